from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import httpx
import pytest

VALID_CODE = "1234"
ISSUED_TOKEN = "abc123xyz0"


class FakeBackend:
    """In-memory stand-in for the REST backend, served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.users: dict[int, dict[str, Any]] = {}
        self._next_id = 1
        self.health_response = httpx.Response(
            200, json={"status": "UP", "timestamp": "2026-10-19T10:00:00Z"}
        )
        for name in ("alice", "bob", "carol"):
            self.add_user(name)

    def add_user(self, username: str, *, enabled: bool = True) -> dict[str, Any]:
        user = {
            "id": self._next_id,
            "username": username,
            "enabled": enabled,
            "comment": None,
            "createdAt": "2026-10-01T00:00:00Z",
            "updatedAt": "2026-10-01T00:00:00Z",
            "createdBy": "system",
            "updatedBy": "system",
        }
        self.users[self._next_id] = user
        self._next_id += 1
        return user

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def requests_to(self, suffix: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(suffix)]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path.endswith("/login"):
            body = json.loads(request.content or b"{}")
            if str(body.get("numberCode")) == VALID_CODE:
                return httpx.Response(200, json={"token": ISSUED_TOKEN})
            return httpx.Response(401, json={"message": "bad code"})

        if request.headers.get("Authorization") != f"Bearer {ISSUED_TOKEN}":
            return httpx.Response(401, json={"message": "unauthorized"})

        if path.endswith("/health"):
            return self.health_response

        if path.endswith("/users"):
            if request.method == "GET":
                return self._list(request)
            if request.method == "POST":
                body = json.loads(request.content)
                user = self.add_user(body["username"], enabled=body["enabled"])
                user["comment"] = body.get("comment")
                return httpx.Response(201, json=user)

        if "/users/" in path:
            user_id = int(path.rsplit("/", 1)[1])
            if user_id not in self.users:
                return httpx.Response(404, json={"message": "User not found"})
            if request.method == "PUT":
                body = json.loads(request.content)
                self.users[user_id].update(
                    username=body["username"],
                    enabled=body["enabled"],
                    comment=body.get("comment"),
                )
                return httpx.Response(200, json=self.users[user_id])
            if request.method == "DELETE":
                del self.users[user_id]
                return httpx.Response(204)

        return httpx.Response(404)

    def _list(self, request: httpx.Request) -> httpx.Response:
        page = int(request.url.params.get("page", "0"))
        size = int(request.url.params.get("size", "20"))
        search = request.url.params.get("search")

        rows = sorted(self.users.values(), key=lambda u: u["username"])
        if search:
            rows = [u for u in rows if search.lower() in u["username"].lower()]
        total = len(rows)
        total_pages = (total + size - 1) // size
        chunk = rows[page * size : (page + 1) * size]

        return httpx.Response(
            200,
            json={
                "_embedded": {"users": chunk},
                "page": {
                    "size": size,
                    "totalElements": total,
                    "totalPages": total_pages,
                    "number": page,
                },
            },
        )


@pytest.fixture()
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture()
def admin_home(tmp_path: Path, monkeypatch) -> Path:
    monkeypatch.setenv("PROCADMIN_HOME", str(tmp_path))
    monkeypatch.delenv("PROCADMIN_BACKEND_URL", raising=False)
    monkeypatch.delenv("PROCADMIN_BIND", raising=False)
    monkeypatch.delenv("PROCADMIN_PORT", raising=False)
    return tmp_path
