from __future__ import annotations

import logging
from typing import Final

import httpx

from procadmin.errors import (
    InvalidCodeError,
    MalformedResponseError,
    NetworkError,
    ServerError,
    ValidationError,
)

logger = logging.getLogger(__name__)

MIN_CODE_LENGTH: Final[int] = 4
MIN_TEXT_TOKEN_LENGTH: Final[int] = 10


def validate_login_code(code: str | None, *, min_length: int = MIN_CODE_LENGTH) -> str:
    cleaned = (code or "").strip()
    if len(cleaned) < min_length:
        raise ValidationError(
            "code",
            f"Enter the code from the bot (at least {min_length} characters).",
        )
    return cleaned


class AuthClient:
    """Exchanges a one-time numeric code for a session token.

    Persisting the returned token is the caller's job.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        login_path: str = "/login",
        min_code_length: int = MIN_CODE_LENGTH,
    ) -> None:
        self._http = http
        self._login_path = login_path
        self._min_code_length = min_code_length

    async def login(self, code: str) -> str:
        cleaned = validate_login_code(code, min_length=self._min_code_length)
        # Non-numeric input goes out as null and is left to the backend to reject.
        number_code = int(cleaned) if cleaned.isdigit() else None

        try:
            response = await self._http.post(self._login_path, json={"numberCode": number_code})
        except httpx.RequestError as e:
            logger.warning("Login request failed: %s", e)
            raise NetworkError() from e

        if response.status_code == 401:
            raise InvalidCodeError()
        if not response.is_success:
            logger.warning("Login rejected with HTTP %s", response.status_code)
            raise ServerError(response.status_code)

        return _parse_token(response)


def _parse_token(response: httpx.Response) -> str:
    # The backend answers either {"token": "..."} or the bare token as text.
    content_type = response.headers.get("content-type") or ""
    if "application/json" in content_type:
        try:
            body = response.json()
        except ValueError as e:
            raise MalformedResponseError() from e
        token = body.get("token") if isinstance(body, dict) else None
        if not isinstance(token, str) or not token:
            raise MalformedResponseError()
        return token

    token = response.text.strip()
    if len(token) < MIN_TEXT_TOKEN_LENGTH:
        raise MalformedResponseError("Unexpected token from server. Please try again later.")
    return token
