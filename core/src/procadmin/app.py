from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.staticfiles import StaticFiles

from procadmin import __version__
from procadmin.auth import HOME_PATH, SessionGuardMiddleware
from procadmin.backend import build_backend_client
from procadmin.config import AdminConfig, apply_env_overrides, load_admin_config
from procadmin.home import AdminPaths, ensure_admin_layout, resolve_admin_home
from procadmin.ui.router import STATIC_DIR as UI_STATIC_DIR
from procadmin.ui.router import router as ui_router
from procadmin.ui.router import templates

logger = logging.getLogger(__name__)

LOG_HANDLER_NAME = "procadmin-file"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_file_logging(paths: AdminPaths, config: AdminConfig) -> Path:
    """Route all loggers into logs/admin.log under the admin home; returns its path."""

    log_path = paths.logs_dir / "admin.log"
    root = logging.getLogger()
    root.setLevel(config.logging.level.upper())
    if any(h.get_name() == LOG_HANDLER_NAME for h in root.handlers):
        return log_path

    handler = RotatingFileHandler(
        log_path,
        maxBytes=config.logging.max_size_mb * 1024 * 1024,
        backupCount=config.logging.backup_count,
        encoding="utf-8",
    )
    handler.set_name(LOG_HANDLER_NAME)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    return log_path


def create_app(*, transport: httpx.AsyncBaseTransport | None = None) -> FastAPI:
    """Build the console app.

    ``transport`` replaces the network layer of the backend client (tests pass
    an ``httpx.MockTransport``).
    """

    @asynccontextmanager
    async def _lifespan(app: FastAPI):
        home = resolve_admin_home()
        paths = ensure_admin_layout(home)
        config = apply_env_overrides(load_admin_config(paths), os.environ)

        log_path = configure_file_logging(paths, config)
        logger.info(
            "Console %s up; backend %s; log %s", __version__, config.backend.base_url, log_path
        )

        app.state.admin_home = home
        app.state.admin_paths = paths
        app.state.admin_config = config
        app.state.backend = build_backend_client(config.backend, transport=transport)

        try:
            yield
        finally:
            await app.state.backend.aclose()

    app = FastAPI(title="ProcAdmin", version=__version__, lifespan=_lifespan)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        response = await call_next(request)
        logger.info(f"{request.method} {request.url.path} - {response.status_code}")
        return response

    app.add_middleware(SessionGuardMiddleware)

    def _error_page(request: Request, status_code: int, message: str) -> HTMLResponse:
        return templates.TemplateResponse(
            request,
            "error.html",
            {
                "title": "Error • ProcAdmin",
                "active": None,
                "hide_nav": getattr(request.state, "session_token", None) is None,
                "status_code": status_code,
                "message": message,
            },
            status_code=status_code,
        )

    @app.exception_handler(StarletteHTTPException)
    async def _http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> HTMLResponse:
        message = exc.detail if isinstance(exc.detail, str) else "HTTP error"
        return _error_page(request, exc.status_code, message)

    @app.exception_handler(Exception)
    async def _unhandled_error_handler(request: Request, exc: Exception) -> HTMLResponse:
        logger.exception("Unhandled error for %s %s", request.method, request.url.path)
        return _error_page(request, 500, "Internal server error")

    if UI_STATIC_DIR.is_dir():
        app.mount(
            "/ui/static",
            StaticFiles(directory=str(UI_STATIC_DIR)),
            name="ui-static",
        )
    else:
        logger.warning(
            "UI static directory is missing (%s); /ui/static will not be served",
            UI_STATIC_DIR,
        )
    app.include_router(ui_router)

    @app.get("/")
    async def root() -> RedirectResponse:
        return RedirectResponse(url=HOME_PATH, status_code=302)

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    return app
