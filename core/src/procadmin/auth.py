from __future__ import annotations

import logging
from typing import Final
from urllib.parse import urlencode

from fastapi import HTTPException, Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import RedirectResponse, Response

from procadmin.session import CookieSessionStore

logger = logging.getLogger(__name__)

LOGIN_PATH: Final[str] = "/ui/login"
HOME_PATH: Final[str] = "/ui/"


def is_public_path(path: str) -> bool:
    if path == "/":
        return True
    if path == "/healthz":
        return True
    if path == LOGIN_PATH:
        return True
    if path.startswith("/ui/static/"):
        return True
    return False


def safe_next_path(raw: str | None) -> str:
    """Only same-app UI destinations are allowed as post-login targets."""

    candidate = (raw or "").strip()
    if not candidate.startswith("/ui/") or candidate.startswith("//"):
        return HOME_PATH
    if candidate.split("?", 1)[0] == LOGIN_PATH:
        return HOME_PATH
    return candidate


def login_redirect_url(request: Request) -> str:
    target = request.url.path
    if request.url.query:
        target = f"{target}?{request.url.query}"
    if target in ("/ui", HOME_PATH):
        return LOGIN_PATH
    return f"{LOGIN_PATH}?{urlencode({'next': target})}"


class SessionGuardMiddleware(BaseHTTPMiddleware):
    """Redirects to the login page when no session token is stored.

    The store is read once per request; nothing subscribes to later changes.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        if is_public_path(request.url.path):
            return await call_next(request)

        token = CookieSessionStore(request).read()
        if not token:
            logger.info("No session for %s; redirecting to login", request.url.path)
            return RedirectResponse(url=login_redirect_url(request), status_code=302)

        request.state.session_token = token
        return await call_next(request)


def require_session_token(request: Request) -> str:
    token = getattr(request.state, "session_token", None)
    if not token:
        # The guard middleware runs first; reaching this means it was bypassed.
        raise HTTPException(status_code=401, detail="Not signed in")
    return str(token)
