"""Tests for normalized error responses."""

from fastapi import FastAPI
from fastapi.testclient import TestClient

from backend.core.errors import (
    AppError,
    StorageUnavailableError,
    UnknownMembershipError,
    app_error_handler,
)
from backend.core.middleware.request_id import RequestIdMiddleware


def test_validation_error_has_standard_shape(client, as_user):
    resp = client.post("/v1/groups", json={"name": ""}, headers=as_user("owner"))
    assert resp.status_code == 400
    body = resp.json()
    rid = resp.headers.get("x-request-id")
    assert body["error"]["code"] == "validation_error"
    assert body["error"]["request_id"] == rid


def test_permission_error_normalized(client, as_user):
    group = client.post("/v1/groups", json={"name": "Crew"}, headers=as_user("owner")).json()["group"]

    resp = client.get(f"/v1/groups/{group['id']}/posts", headers=as_user("other"))
    assert resp.status_code == 403
    body = resp.json()
    assert body["error"]["code"] == "forbidden"
    assert body["error"]["request_id"] == resp.headers.get("x-request-id")


def test_unauthorized_cron_call_normalized(client):
    resp = client.post("/v1/cron/streak-sweep", headers={"X-Cron-Key": "guess"})
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "unauthorized"


def _app_raising(exc: AppError) -> TestClient:
    test_app = FastAPI()
    test_app.add_middleware(RequestIdMiddleware)
    test_app.add_exception_handler(AppError, app_error_handler)

    @test_app.get("/boom")
    async def boom():
        raise exc

    return TestClient(test_app)


def test_storage_unavailable_maps_to_503():
    resp = _app_raising(StorageUnavailableError("Storage unavailable during get_streak")).get("/boom")
    assert resp.status_code == 503
    assert resp.json()["error"]["code"] == "storage_unavailable"


def test_unknown_membership_maps_to_404():
    resp = _app_raising(UnknownMembershipError("No streak record for this membership")).get("/boom")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "unknown_membership"
