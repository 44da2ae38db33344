import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from taskstore.cache.layer import CacheLayer
from taskstore.core.config import Settings, get_settings
from taskstore.core.errors import StorageError
from taskstore.core.logging_setup import setup_logging
from taskstore.routers import tasks
from taskstore.services.task_service import TaskService
from taskstore.store import TaskStore

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store = TaskStore(settings.database_url, echo=settings.database_echo)
        # A store that cannot be opened aborts startup.
        await store.initialize()

        cache = CacheLayer(settings) if settings.cache_enabled else None
        if cache is not None:
            await cache.init_cache()

        app.state.task_service = TaskService(store, cache)
        try:
            yield
        finally:
            if cache is not None:
                await cache.close()
            await store.close()
            logger.info("TaskStore closed")

    app = FastAPI(
        title="TaskStore API",
        description="Task tracking REST API with tag and due-date queries",
        swagger_ui_parameters={"displayRequestDuration": True},
        version=VERSION,
        lifespan=lifespan,
    )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.info("Rejected request to %s: %s", request.url.path, exc.errors())
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        logger.error("Storage failure handling %s: %s", request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal Server Error"},
        )

    # Include routers
    app.include_router(tasks.router)

    @app.get("/")
    async def root():
        return {
            "message": "Welcome to TaskStore API",
            "docs": "/docs",
            "version": VERSION,
        }

    @app.get("/health")
    async def health_check(request: Request):
        service: TaskService = request.app.state.task_service
        health = {"status": "healthy"}
        if service.cache is not None:
            health["cache"] = service.cache.get_stats()
        return health

    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    setup_logging(settings.log_level)
    logger.info("Starting TaskStore API on %s:%s", settings.host, settings.port)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    run()
