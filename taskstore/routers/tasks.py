import logging

from fastapi import APIRouter, Depends, HTTPException, Path, Request, Response, status
from typing_extensions import Annotated

from taskstore.core.errors import TaskNotFoundError
from taskstore.models import Task, TaskCreate, TaskCreated
from taskstore.services.task_service import TaskService

logger = logging.getLogger(__name__)

router = APIRouter()

# A yy/mm/dd part that is not two digits is a 400, not an unmatched route
TwoDigits = Annotated[str, Path(pattern=r"^[0-9]{2}$")]


def get_task_service(request: Request) -> TaskService:
    return request.app.state.task_service


def require_json(request: Request) -> None:
    """Reject request bodies that are not declared as application/json."""
    content_type = request.headers.get("content-type", "")
    media_type = content_type.split(";", 1)[0].strip().lower()
    if media_type != "application/json":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="expect application/json Content-Type",
        )


def not_found(exc: TaskNotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


ServiceDep = Annotated[TaskService, Depends(get_task_service)]


@router.post(
    "/task",
    response_model=TaskCreated,
    dependencies=[Depends(require_json)],
    tags=["tasks"],
)
async def create_task(task_data: TaskCreate, request: Request, service: ServiceDep):
    """Create a new task and return its id"""
    logger.info("Handling task create at %s", request.url.path)
    task_id = await service.create_task(task_data.text, task_data.tags, task_data.due)
    return TaskCreated(id=task_id)


@router.get("/task", response_model=list[Task], tags=["tasks"])
async def get_all_tasks(request: Request, service: ServiceDep):
    logger.info("Handling get all tasks at %s", request.url.path)
    return await service.get_all_tasks()


@router.delete("/task", tags=["tasks"])
async def delete_all_tasks(request: Request, service: ServiceDep):
    logger.info("Handling delete all tasks at %s", request.url.path)
    await service.delete_all_tasks()
    return Response(status_code=status.HTTP_200_OK)


@router.get("/task/{task_id}", response_model=Task, tags=["tasks"])
async def get_task(task_id: int, request: Request, service: ServiceDep):
    """Get a specific task by ID"""
    logger.info("Handling get task at %s", request.url.path)
    try:
        return await service.get_task(task_id)
    except TaskNotFoundError as e:
        raise not_found(e)


@router.delete("/task/{task_id}", tags=["tasks"])
async def delete_task(task_id: int, request: Request, service: ServiceDep):
    """Delete a task"""
    logger.info("Handling delete task at %s", request.url.path)
    try:
        await service.delete_task(task_id)
    except TaskNotFoundError as e:
        raise not_found(e)
    return Response(status_code=status.HTTP_200_OK)


@router.get("/tag/{name}", response_model=list[Task], tags=["tags"])
async def get_tag(name: str, request: Request, service: ServiceDep):
    """Tasks whose tags contain ``name``"""
    logger.info("Handling get tag at %s", request.url.path)
    try:
        return await service.get_tag(name)
    except TaskNotFoundError as e:
        raise not_found(e)


@router.get("/due/{yy}/{mm}/{dd}", response_model=list[Task], tags=["due"])
async def get_due(
    yy: TwoDigits, mm: TwoDigits, dd: TwoDigits, request: Request, service: ServiceDep
):
    """Tasks due on 20yy-mm-dd"""
    logger.info("Handling get due at %s", request.url.path)
    date = f"20{yy}-{mm}-{dd}"
    try:
        return await service.get_due(date)
    except TaskNotFoundError as e:
        raise not_found(e)
