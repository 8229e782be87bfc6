from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import httpx
import pytest
from fastapi import Body, FastAPI, Query, Response
from fastapi.responses import JSONResponse

from listing_control.clients.admin_api_sdk.config import ClientConfig
from listing_control.clients.admin_api_sdk.http_client import AsyncHttpClient

BASE_URL = "http://resource-api.test/api/v1/"
CURRENT_USER_ID = 7
REQUESTABLE_ROLES = ("Developer", "Admin")


@dataclass
class FakeResourceApi:
    """In-memory Resource API; ``locked`` ids are refused by bulk endpoints."""

    logs: dict[int, dict[str, Any]] = field(default_factory=dict)
    permission_requests: dict[int, dict[str, Any]] = field(default_factory=dict)
    users: dict[int, dict[str, Any]] = field(default_factory=dict)
    user_roles: dict[int, list[str]] = field(default_factory=dict)
    locked: set[int] = field(default_factory=set)
    requests: list[httpx.Request] = field(default_factory=list)
    app: FastAPI = field(init=False)

    def __post_init__(self) -> None:
        self.app = _build_app(self)

    def http(self) -> AsyncHttpClient:
        async def _record(request: httpx.Request) -> None:
            self.requests.append(request)

        client = httpx.AsyncClient(
            transport=httpx.ASGITransport(app=self.app),
            base_url=BASE_URL,
            event_hooks={"request": [_record]},
        )
        return AsyncHttpClient(ClientConfig(base_url=BASE_URL, retries=0, retry_backoff_seconds=0), client=client)

    def last_params(self, path: str) -> dict[str, str]:
        matching = [request for request in self.requests if request.url.path == f"/api/v1/{path}"]
        return dict(matching[-1].url.params)


def _not_found(kind: str) -> JSONResponse:
    return JSONResponse(status_code=404, content={"code": "NOT_FOUND", "message": f"{kind} not found"})


def _page(rows: list[dict[str, Any]], page: int, page_size: int) -> dict[str, Any]:
    start = (page - 1) * page_size
    return {"items": rows[start : start + page_size], "totalCount": len(rows), "page": page, "pageSize": page_size}


def _build_app(api: FakeResourceApi) -> FastAPI:
    app = FastAPI()

    def _filter_logs(search_term: str | None, log_level: str | None) -> list[dict[str, Any]]:
        rows = list(api.logs.values())
        if search_term:
            rows = [row for row in rows if search_term.lower() in row["message"].lower()]
        if log_level:
            rows = [row for row in rows if row["logLevel"] == log_level]
        return rows

    @app.get("/api/v1/logs")
    def list_logs(
        search_term: str | None = Query(None, alias="searchTerm"),
        log_level: str | None = Query(None, alias="logLevel"),
        page: int = Query(1),
        page_size: int = Query(25, alias="pageSize"),
        sort_descending: str = Query("true", alias="sortDescending"),
    ):
        rows = sorted(_filter_logs(search_term, log_level), key=lambda row: row["id"], reverse=sort_descending == "true")
        return _page(rows, page, page_size)

    @app.get("/api/v1/logs/count")
    def count_logs(
        search_term: str | None = Query(None, alias="searchTerm"),
        log_level: str | None = Query(None, alias="logLevel"),
    ):
        return {"count": len(_filter_logs(search_term, log_level))}

    @app.delete("/api/v1/logs/batch")
    def delete_logs(ids: list[int] = Body(...)):
        deleted = [log_id for log_id in ids if log_id in api.logs and log_id not in api.locked]
        for log_id in deleted:
            del api.logs[log_id]
        return {"deletedCount": len(deleted)}

    @app.get("/api/v1/logs/{log_id}")
    def get_log(log_id: int):
        if log_id not in api.logs:
            return _not_found("Log")
        return api.logs[log_id]

    @app.delete("/api/v1/logs/{log_id}")
    def delete_log(log_id: int):
        if log_id not in api.logs:
            return _not_found("Log")
        del api.logs[log_id]
        return {"deleted": True}

    @app.get("/api/v1/permission-requests")
    def list_permission_requests(
        status: str | None = Query(None),
        page: int = Query(1),
        page_size: int = Query(25, alias="pageSize"),
    ):
        rows = [row for row in api.permission_requests.values() if status is None or row["status"] == status]
        return _page(rows, page, page_size)

    @app.post("/api/v1/permission-requests/bulk/approve")
    def approve_permission_requests(ids: list[int] = Body(...)):
        approved = 0
        for request_id in ids:
            row = api.permission_requests.get(request_id)
            if row is None or request_id in api.locked or row["status"] != "pending":
                continue
            row["status"] = "approved"
            approved += 1
        return {"succeededCount": approved}

    @app.get("/api/v1/permission-requests/{request_id}")
    def get_permission_request(request_id: int):
        if request_id not in api.permission_requests:
            return _not_found("Permission request")
        return api.permission_requests[request_id]

    @app.get("/api/v1/users/username/{username}")
    def get_user_by_username(username: str):
        for row in api.users.values():
            if row["username"] == username:
                return row
        return _not_found("User")

    @app.get("/api/v1/users/check/username/{username}")
    def check_username(username: str, exclude_id: int | None = Query(None, alias="excludeId")):
        return any(row["username"] == username and row["id"] != exclude_id for row in api.users.values())

    @app.get("/api/v1/users/me/available-roles")
    def available_roles():
        held = api.user_roles.get(CURRENT_USER_ID, [])
        pending = {
            row["requestedRole"]
            for row in api.permission_requests.values()
            if row["userId"] == CURRENT_USER_ID and row["status"] == "pending"
        }
        return [
            {"name": role, "description": f"{role} access"}
            for role in REQUESTABLE_ROLES
            if role not in held and role not in pending
        ]

    @app.post("/api/v1/users/me/permission-requests")
    def create_permission_request(body: dict[str, Any] = Body(...)):
        for role in body["requestedRoles"]:
            request_id = max(api.permission_requests, default=0) + 1
            api.permission_requests[request_id] = {
                "id": request_id,
                "userId": CURRENT_USER_ID,
                "username": api.users[CURRENT_USER_ID]["username"],
                "requestedRole": role,
                "requestMessage": body.get("requestMessage"),
                "status": "pending",
            }
        return Response(status_code=204)

    @app.get("/api/v1/users/{user_id}/roles")
    def get_user_roles(user_id: int):
        if user_id not in api.user_roles:
            return _not_found("User")
        return api.user_roles[user_id]

    @app.post("/api/v1/users/{user_id}/roles/{role}")
    def add_user_role(user_id: int, role: str):
        roles = api.user_roles.get(user_id)
        if roles is None:
            return _not_found("User")
        if role in roles:
            return JSONResponse(status_code=409, content={"code": "CONFLICT", "message": "User already has this role"})
        roles.append(role)
        return Response(status_code=204)

    @app.delete("/api/v1/users/{user_id}/roles/{role}")
    def remove_user_role(user_id: int, role: str):
        roles = api.user_roles.get(user_id)
        if roles is None or role not in roles:
            return _not_found("Role")
        roles.remove(role)
        return Response(status_code=204)

    @app.get("/api/v1/third-party-api/statistics")
    def third_party_statistics():
        return {
            "totalApiCalls": 42,
            "totalApisTracked": 2,
            "callsByApi": {"geocoder": 30, "mailer": 12},
            "lastCalledByApi": {"geocoder": "2024-05-08T12:00:00Z", "mailer": None},
        }

    return app


@pytest.fixture()
def resource_api() -> FakeResourceApi:
    api = FakeResourceApi()
    for log_id in range(1, 121):
        api.logs[log_id] = {
            "id": log_id,
            "logLevel": "Error" if log_id % 10 == 0 else "Information",
            "timestamp": "2024-05-08T12:00:00Z",
            "message": f"event {log_id}",
        }
    for request_id in range(1, 6):
        api.permission_requests[request_id] = {
            "id": request_id,
            "userId": 100 + request_id,
            "username": f"user{request_id}",
            "requestedRole": "Admin",
            "status": "pending",
        }
    api.users[CURRENT_USER_ID] = {"id": CURRENT_USER_ID, "username": "ana", "email": "ana@example.test", "isActive": True}
    api.user_roles[CURRENT_USER_ID] = ["User"]
    return api
