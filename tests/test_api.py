# tests/test_api.py

from __future__ import annotations

import json
from datetime import datetime, timezone

from fastapi.testclient import TestClient

from taskstore.core.errors import StorageError

TASK = {"text": "buy milk", "tags": ["home", "shop"], "due": "2024-03-15T09:00:00Z"}


def parse_ts(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def create(client: TestClient, **overrides) -> int:
    resp = client.post("/task", json={**TASK, **overrides})
    assert resp.status_code == 200, resp.text
    return resp.json()["id"]


def test_create_and_get(client: TestClient) -> None:
    task_id = create(client)

    resp = client.get(f"/task/{task_id}")
    assert resp.status_code == 200
    body = resp.json()
    assert body["id"] == task_id
    assert body["text"] == "buy milk"
    assert body["tags"] == ["home", "shop"]
    assert parse_ts(body["due"]) == datetime(2024, 3, 15, 9, 0, tzinfo=timezone.utc)


def test_get_all(client: TestClient) -> None:
    assert client.get("/task").json() == []

    ids = [create(client, text=f"t{i}") for i in range(3)]
    resp = client.get("/task")
    assert resp.status_code == 200
    assert [t["id"] for t in resp.json()] == ids


def test_trailing_slash_redirects(client: TestClient) -> None:
    create(client)
    resp = client.get("/task/")
    assert resp.status_code == 200
    assert len(resp.json()) == 1


def test_get_task_errors(client: TestClient) -> None:
    assert client.get("/task/abc").status_code == 400
    assert client.get("/task/99").status_code == 404


def test_create_rejects_bad_content_type(client: TestClient) -> None:
    resp = client.post(
        "/task", content=json.dumps(TASK), headers={"Content-Type": "text/plain"}
    )
    assert resp.status_code == 400
    assert client.get("/task").json() == []


def test_create_rejects_bad_bodies(client: TestClient) -> None:
    assert client.post("/task", json={**TASK, "priority": "high"}).status_code == 400
    assert client.post("/task", json={"text": "no tags or due"}).status_code == 400
    assert client.post("/task", json={**TASK, "tags": ["two words"]}).status_code == 400
    assert client.post("/task", json={**TASK, "due": "someday"}).status_code == 400
    resp = client.post(
        "/task", content="{not json", headers={"Content-Type": "application/json"}
    )
    assert resp.status_code == 400


def test_create_accepts_json_with_charset(client: TestClient) -> None:
    resp = client.post(
        "/task",
        content=json.dumps(TASK),
        headers={"Content-Type": "application/json; charset=utf-8"},
    )
    assert resp.status_code == 200


def test_delete_task(client: TestClient) -> None:
    task_id = create(client)

    assert client.delete(f"/task/{task_id}").status_code == 200
    assert client.get(f"/task/{task_id}").status_code == 404
    assert client.delete(f"/task/{task_id}").status_code == 404
    assert client.delete("/task/xyz").status_code == 400


def test_delete_all(client: TestClient) -> None:
    create(client)
    create(client)

    assert client.delete("/task").status_code == 200
    assert client.get("/task").json() == []
    assert client.delete("/task").status_code == 200


def test_get_tag(client: TestClient) -> None:
    work = create(client, tags=["work"])
    create(client, tags=["home"])
    urgent = create(client, tags=["work,urgent"])

    resp = client.get("/tag/work")
    assert resp.status_code == 200
    assert [t["id"] for t in resp.json()] == [work, urgent]
    assert client.get("/tag/garden").status_code == 404


def test_get_due(client: TestClient) -> None:
    task_id = create(client)

    resp = client.get("/due/24/03/15")
    assert resp.status_code == 200
    assert [t["id"] for t in resp.json()] == [task_id]

    assert client.get("/due/24/03/16").status_code == 404
    assert client.get("/due/ab/03/15").status_code == 400
    assert client.get("/due/2024/03/15").status_code == 400
    assert client.get("/due/1/03/15").status_code == 400


def test_storage_error_is_500(client: TestClient, monkeypatch) -> None:
    async def broken():
        raise StorageError("disk on fire")

    service = client.app.state.task_service
    monkeypatch.setattr(service.store, "get_all_tasks", broken)

    resp = client.get("/task")
    assert resp.status_code == 500
    assert resp.json() == {"detail": "Internal Server Error"}


def test_root_and_health(client: TestClient) -> None:
    assert client.get("/").json()["version"] == "1.0.0"

    create(client)
    client.get("/task/1")
    health = client.get("/health").json()
    assert health["status"] == "healthy"
    assert health["cache"]["misses"] == 1


def test_due_edge_values_round_trip(client: TestClient) -> None:
    dues = [
        "2024-03-15T09:00:00.500000Z",
        "0999-01-01T00:00:00Z",
        "2024-03-15T23:30:05+03:00",
    ]
    ids = [create(client, due=d) for d in dues]

    for task_id, d in zip(ids, dues):
        resp = client.get(f"/task/{task_id}")
        assert resp.status_code == 200
        assert parse_ts(resp.json()["due"]) == parse_ts(d)

    listed = client.get("/task")
    assert listed.status_code == 200
    assert [t["id"] for t in listed.json()] == ids
    assert client.get("/tag/home").status_code == 200

    # local date of the +03:00 value
    assert [t["id"] for t in client.get("/due/24/03/15").json()] == [ids[0], ids[2]]
