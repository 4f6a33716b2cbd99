import inspect

import pytest
from fastapi.testclient import TestClient

from app.api.routers import imports as imports_router
from app.main import app


@pytest.fixture
def client(orchestrator, monkeypatch):
    monkeypatch.setattr(imports_router, "get_orchestrator", lambda: orchestrator)
    return TestClient(app)


def _payload(**overrides):
    payload = {
        "fileName": "people.csv",
        "type": "customer",
        "fileType": "csv",
        "uploadType": "local",
        "scopeBrandIds": ["brand-1"],
        "user": {"_id": "user-1", "email": "owner@example.com"},
    }
    payload.update(overrides)
    return payload


def test_health_check():
    response = TestClient(app).get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_create_import_and_read_its_history(client, orchestrator, write_csv):
    write_csv("people.csv", ["firstName", "primaryEmail"], [["Ada", "ada@example.com"], ["Grace", "grace@example.com"]])

    response = client.post("/imports", json=_payload())

    assert response.status_code == 200
    import_history_id = response.json()["id"]
    assert orchestrator.wait(import_history_id, timeout=30)

    response = client.get(f"/import-history/{import_history_id}")
    assert response.status_code == 200
    body = response.json()
    assert body["_id"] == import_history_id
    assert body["contentType"] == "customer"
    assert body["userId"] == "user-1"
    assert body["total"] == 2
    assert body["success"] == 2
    assert body["failed"] == 0
    assert body["status"] == "Done"
    assert body["percentage"] == 100.0
    assert body["errorMsgs"] == []
    assert len(body["ids"]) == 2


def test_create_import_rejects_non_csv_files(client):
    response = client.post("/imports", json=_payload(fileType="xlsx"))

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid file type"


def test_create_import_validates_content_type(client):
    response = client.post("/imports", json=_payload(type="invoice"))

    assert response.status_code == 422


def test_unknown_history_returns_404(client):
    assert client.get("/import-history/missing").status_code == 404
    assert client.delete("/import-history/missing").status_code == 404


def test_delete_history_removes_import(client, orchestrator, write_csv):
    write_csv("people.csv", ["primaryEmail"], [["a@example.com"], ["b@example.com"]])
    import_history_id = client.post("/imports", json=_payload()).json()["id"]
    assert orchestrator.wait(import_history_id, timeout=30)

    response = client.delete(f"/import-history/{import_history_id}")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert client.get(f"/import-history/{import_history_id}").status_code == 404


def test_cancel_imports(client):
    response = client.post("/imports/cancel")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.parametrize(
    "endpoint",
    [
        imports_router.create_import,
        imports_router.cancel_imports,
        imports_router.get_import_history_detail,
        imports_router.remove_import_history,
    ],
)
def test_blocking_endpoints_run_in_the_threadpool(endpoint):
    # Sync handlers are dispatched to a worker thread, so a long removal
    # cannot stall cancellation or progress requests on the event loop.
    assert not inspect.iscoroutinefunction(endpoint)
