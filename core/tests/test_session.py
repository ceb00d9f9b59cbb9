from __future__ import annotations

import json
from pathlib import Path

import pytest
from starlette.requests import Request
from starlette.responses import Response

from procadmin.errors import TokenPersistError
from procadmin.session import SESSION_COOKIE, CookieSessionStore, FileSessionStore


def _request(cookie: str | None = None) -> Request:
    headers = []
    if cookie is not None:
        headers.append((b"cookie", cookie.encode("latin-1")))
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers})


def test_file_store_save_read_clear(tmp_path: Path) -> None:
    store = FileSessionStore(tmp_path / "run" / "session.json")
    assert store.read() is None

    store.save("abc123xyz0")
    assert store.read() == "abc123xyz0"

    store.clear()
    assert store.read() is None
    # Clearing twice is fine.
    store.clear()


def test_file_store_reads_durable_value_every_time(tmp_path: Path) -> None:
    path = tmp_path / "session.json"
    store = FileSessionStore(path)
    store.save("first-token-value")

    # Another process (or a second store) replaces the token.
    path.write_text(json.dumps({"token": "second-token-value"}), encoding="utf-8")
    assert store.read() == "second-token-value"

    FileSessionStore(path).clear()
    assert store.read() is None


def test_file_store_save_failure_is_distinguishable(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")
    store = FileSessionStore(blocker / "session.json")

    with pytest.raises(TokenPersistError):
        store.save("abc123xyz0")


def test_file_store_ignores_malformed_file(tmp_path: Path) -> None:
    path = tmp_path / "session.json"
    path.write_text("{not json", encoding="utf-8")
    assert FileSessionStore(path).read() is None


def test_cookie_store_reads_request_cookie() -> None:
    assert CookieSessionStore(_request(f"{SESSION_COOKIE}=abc123xyz0")).read() == "abc123xyz0"
    assert CookieSessionStore(_request()).read() is None
    assert CookieSessionStore(_request(f"{SESSION_COOKIE}=")).read() is None


def test_cookie_store_save_sets_httponly_cookie() -> None:
    response = Response()
    CookieSessionStore(_request(), response).save("abc123xyz0")

    header = response.headers["set-cookie"]
    assert f"{SESSION_COOKIE}=abc123xyz0" in header
    assert "httponly" in header.lower()
    assert "samesite=lax" in header.lower()


def test_cookie_store_save_without_response_fails() -> None:
    with pytest.raises(TokenPersistError):
        CookieSessionStore(_request()).save("abc123xyz0")


@pytest.mark.parametrize("token", ["", "has space", "semi;colon", "x" * 5000])
def test_cookie_store_rejects_unstorable_tokens(token: str) -> None:
    with pytest.raises(TokenPersistError):
        CookieSessionStore(_request(), Response()).save(token)


def test_cookie_store_clear_expires_cookie() -> None:
    response = Response()
    CookieSessionStore(_request(f"{SESSION_COOKIE}=abc123xyz0"), response).clear()
    header = response.headers["set-cookie"].lower()
    assert f"{SESSION_COOKIE}=" in header
    assert "max-age=0" in header
