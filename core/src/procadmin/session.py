from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Final, Protocol

from starlette.requests import Request
from starlette.responses import Response

from procadmin.errors import TokenPersistError

logger = logging.getLogger(__name__)

SESSION_COOKIE: Final[str] = "procadmin_token"
SESSION_COOKIE_MAX_AGE: Final[int] = 60 * 60 * 24 * 30
MAX_COOKIE_TOKEN_BYTES: Final[int] = 4096

# RFC 6265 cookie-octet.
_COOKIE_SAFE = re.compile(r"^[\x21\x23-\x2B\x2D-\x3A\x3C-\x5B\x5D-\x7E]+$")


class SessionStore(Protocol):
    """Holder of the opaque session token.

    Implementations keep no copy of the token apart from the durable store, so
    ``read`` always reflects what was last persisted.
    """

    def save(self, token: str) -> None: ...

    def read(self) -> str | None: ...

    def clear(self) -> None: ...


class CookieSessionStore:
    """Session token kept in the browser's cookie jar.

    Reads come from the incoming request; writes go to the outgoing response.
    """

    def __init__(self, request: Request, response: Response | None = None) -> None:
        self._request = request
        self._response = response

    def save(self, token: str) -> None:
        if self._response is None:
            raise TokenPersistError("No response available to carry the session cookie.")
        if not token or not _COOKIE_SAFE.match(token):
            raise TokenPersistError("The session token cannot be stored in a cookie.")
        if len(token.encode("ascii")) > MAX_COOKIE_TOKEN_BYTES:
            raise TokenPersistError("The session token is too large to store in a cookie.")

        self._response.set_cookie(
            SESSION_COOKIE,
            token,
            httponly=True,
            samesite="lax",
            max_age=SESSION_COOKIE_MAX_AGE,
        )

    def read(self) -> str | None:
        return self._request.cookies.get(SESSION_COOKIE) or None

    def clear(self) -> None:
        if self._response is not None:
            self._response.delete_cookie(SESSION_COOKIE)


class FileSessionStore:
    """Session token kept in a small JSON file (used by the CLI)."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def save(self, token: str) -> None:
        if not token:
            raise TokenPersistError("Refusing to persist an empty session token.")

        payload = json.dumps({"token": token}) + "\n"
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=".session-", suffix=".tmp", dir=str(self.path.parent)
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise TokenPersistError(f"The session token could not be persisted: {e}") from e

    def read(self) -> str | None:
        if not self.path.exists():
            return None
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable session file %s: %s", self.path, e)
            return None
        if not isinstance(data, dict):
            return None
        token = data.get("token")
        return token if isinstance(token, str) and token else None

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
