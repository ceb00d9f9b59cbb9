from __future__ import annotations

from pathlib import Path
from typing import Any
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Depends, Form, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from starlette.responses import Response

from procadmin.auth import LOGIN_PATH, require_session_token, safe_next_path
from procadmin.config import AdminConfig
from procadmin.errors import (
    DirectoryError,
    InvalidCodeError,
    MalformedResponseError,
    NetworkError,
    ServerError,
    TokenPersistError,
    ValidationError,
)
from procadmin.health import ServerClock, check_health
from procadmin.login import AuthClient
from procadmin.session import CookieSessionStore
from procadmin.users import (
    DirectoryQuery,
    NewUser,
    UserDirectoryClient,
    UserPage,
    UserUpdate,
    load_page,
)

BASE_DIR = Path(__file__).resolve().parent
TEMPLATES_DIR = BASE_DIR / "templates"
STATIC_DIR = BASE_DIR / "static"

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

router = APIRouter(prefix="/ui", tags=["ui"])


def _flash_from_request(request: Request) -> dict[str, Any] | None:
    msg = request.query_params.get("msg")
    if not msg:
        return None
    kind = request.query_params.get("kind") or ""
    return {"message": msg, "kind": kind}


def _get_config(request: Request) -> AdminConfig:
    config = getattr(request.app.state, "admin_config", None)
    if config is None:
        raise HTTPException(status_code=500, detail="Config not initialized")
    return config


def _get_backend(request: Request) -> httpx.AsyncClient:
    backend = getattr(request.app.state, "backend", None)
    if backend is None:
        raise HTTPException(status_code=500, detail="Backend client not initialized")
    return backend


def _directory(request: Request, token: str) -> UserDirectoryClient:
    config = _get_config(request)
    return UserDirectoryClient(_get_backend(request), token, path=config.backend.users_path)


def _parse_int(raw: str | None, *, default: int | None) -> int | None:
    try:
        return int((raw or "").strip())
    except ValueError:
        return default


def _query_from_values(
    config: AdminConfig, page: str | None, size: str | None, q: str | None
) -> DirectoryQuery:
    page_index = max(_parse_int(page, default=0) or 0, 0)
    page_size = config.users.normalize_page_size(_parse_int(size, default=None))
    term = (q or "").strip() or None
    return DirectoryQuery(page_index=page_index, page_size=page_size, search_term=term)


def _users_url(query: DirectoryQuery, **extra: str) -> str:
    params: dict[str, Any] = {"page": query.page_index, "size": query.page_size}
    if query.search_term:
        params["q"] = query.search_term
    params.update(extra)
    return f"/ui/users?{urlencode(params)}"


def _back_to_users(query: DirectoryQuery, message: str, *, ok: bool) -> RedirectResponse:
    # Always land on the list again so it is re-fetched from the backend.
    return RedirectResponse(
        url=_users_url(query, msg=message, kind="ok" if ok else "bad"),
        status_code=302,
    )


def _login_page(
    request: Request,
    *,
    error: str | None = None,
    next_path: str | None = None,
    status_code: int = 200,
) -> HTMLResponse:
    config = _get_config(request)
    return templates.TemplateResponse(
        request,
        "login.html",
        {
            "title": "Sign in • ProcAdmin",
            "hide_nav": True,
            "active": None,
            "flash": _flash_from_request(request),
            "error": error,
            "bot_url": config.login.bot_url,
            "next": safe_next_path(next_path or request.query_params.get("next")),
        },
        status_code=status_code,
    )


@router.get("/login", response_class=HTMLResponse)
async def ui_login(request: Request) -> HTMLResponse:
    return _login_page(request)


@router.post("/login", response_model=None)
async def ui_login_post(
    request: Request,
    code: str = Form(default=""),
    next_path: str = Form(default="", alias="next"),
) -> Response:
    config = _get_config(request)
    client = AuthClient(
        _get_backend(request),
        login_path=config.backend.login_path,
        min_code_length=config.login.min_code_length,
    )

    try:
        token = await client.login(code)
    except ValidationError as e:
        return _login_page(request, error=e.message, next_path=next_path, status_code=400)
    except InvalidCodeError as e:
        return _login_page(request, error=e.message, next_path=next_path, status_code=401)
    except (NetworkError, ServerError, MalformedResponseError) as e:
        return _login_page(request, error=e.message, next_path=next_path, status_code=502)

    resp = RedirectResponse(url=safe_next_path(next_path), status_code=302)
    try:
        CookieSessionStore(request, resp).save(token)
    except TokenPersistError as e:
        return _login_page(request, error=e.message, next_path=next_path, status_code=500)
    return resp


@router.post("/logout")
async def ui_logout(request: Request) -> RedirectResponse:
    resp = RedirectResponse(url=f"{LOGIN_PATH}?msg=Signed+out", status_code=302)
    CookieSessionStore(request, resp).clear()
    return resp


@router.get("/", response_class=HTMLResponse)
async def ui_home(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "home.html",
        {
            "title": "Dashboard • ProcAdmin",
            "active": "home",
            "flash": _flash_from_request(request),
        },
    )


@router.get("/users", response_class=HTMLResponse)
async def ui_users_list(
    request: Request, token: str = Depends(require_session_token)
) -> HTMLResponse:
    config = _get_config(request)
    query = _query_from_values(
        config,
        request.query_params.get("page"),
        request.query_params.get("size"),
        request.query_params.get("q"),
    )

    page: UserPage | None = None
    load_error: str | None = None
    try:
        page = await load_page(_directory(request, token), query)
    except DirectoryError as e:
        load_error = e.message

    ctx: dict[str, Any] = {
        "title": "Users • ProcAdmin",
        "active": "users",
        "flash": _flash_from_request(request),
        "load_error": load_error,
        "query": query,
        "page_size_options": config.users.page_size_options,
        "records": page.records if page is not None else [],
        "window": page.window if page is not None else None,
        "prev_url": None,
        "next_url": None,
    }

    if page is not None:
        # Navigation continues from the page that was actually shown.
        shown = DirectoryQuery(
            page_index=page.window.page_index,
            page_size=query.page_size,
            search_term=query.search_term,
        )
        ctx["query"] = shown
        prev_q = shown.previous(page.window)
        next_q = shown.next(page.window)
        ctx["prev_url"] = _users_url(prev_q) if prev_q is not None else None
        ctx["next_url"] = _users_url(next_q) if next_q is not None else None

    return templates.TemplateResponse(request, "users.html", ctx)


@router.post("/users/create")
async def ui_users_create(
    request: Request,
    username: str = Form(default=""),
    password: str = Form(default=""),
    enabled: str = Form(default=""),
    comment: str = Form(default=""),
    page: str = Form(default="0"),
    size: str = Form(default=""),
    q: str = Form(default=""),
    token: str = Depends(require_session_token),
) -> RedirectResponse:
    query = _query_from_values(_get_config(request), page, size, q)
    new_user = NewUser(
        username=username,
        password=password or None,
        enabled=bool(enabled),
        comment=comment,
    )

    try:
        await _directory(request, token).create_user(new_user)
    except (ValidationError, DirectoryError) as e:
        return _back_to_users(query, e.message, ok=False)

    return _back_to_users(query, "User created", ok=True)


@router.post("/users/{user_id}/update")
async def ui_users_update(
    request: Request,
    user_id: str,
    username: str = Form(default=""),
    enabled: str = Form(default=""),
    comment: str = Form(default=""),
    page: str = Form(default="0"),
    size: str = Form(default=""),
    q: str = Form(default=""),
    token: str = Depends(require_session_token),
) -> RedirectResponse:
    query = _query_from_values(_get_config(request), page, size, q)
    update = UserUpdate(username=username, enabled=bool(enabled), comment=comment)

    try:
        await _directory(request, token).update_user(user_id, update)
    except (ValidationError, DirectoryError) as e:
        return _back_to_users(query, e.message, ok=False)

    return _back_to_users(query, "User saved", ok=True)


@router.post("/users/{user_id}/delete")
async def ui_users_delete(
    request: Request,
    user_id: str,
    page: str = Form(default="0"),
    size: str = Form(default=""),
    q: str = Form(default=""),
    token: str = Depends(require_session_token),
) -> RedirectResponse:
    query = _query_from_values(_get_config(request), page, size, q)

    try:
        await _directory(request, token).delete_user(user_id)
    except DirectoryError as e:
        return _back_to_users(query, e.message, ok=False)

    return _back_to_users(query, "User deleted", ok=True)


async def _fresh_snapshot(request: Request, token: str):
    config = _get_config(request)
    return await check_health(
        _get_backend(request),
        token,
        path=config.backend.health_path,
        timeout_s=config.backend.health_timeout_s,
    )


@router.get("/monitoring", response_class=HTMLResponse)
async def ui_monitoring(
    request: Request, token: str = Depends(require_session_token)
) -> HTMLResponse:
    config = _get_config(request)
    snapshot = await _fresh_snapshot(request, token)
    clock = ServerClock()
    clock.seed(snapshot.server_timestamp)

    return templates.TemplateResponse(
        request,
        "monitoring.html",
        {
            "title": "Monitoring • ProcAdmin",
            "active": "monitoring",
            "flash": _flash_from_request(request),
            "snapshot": snapshot,
            "server_time": clock.value.isoformat() if clock.value is not None else None,
            "interval_ms": int(config.backend.health_interval_s * 1000),
            "timeout_ms": int(config.backend.health_timeout_s * 1000),
        },
    )


@router.get("/monitoring/status")
async def ui_monitoring_status(
    request: Request, token: str = Depends(require_session_token)
) -> JSONResponse:
    snapshot = await _fresh_snapshot(request, token)
    return JSONResponse(snapshot.as_dict())
