from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Final

import httpx

from procadmin.backend import bearer_headers, error_detail
from procadmin.errors import (
    CreateError,
    DeleteError,
    DirectoryError,
    LoadError,
    UpdateError,
    ValidationError,
)

logger = logging.getLogger(__name__)

MIN_USERNAME_LENGTH: Final[int] = 3
MIN_PASSWORD_LENGTH: Final[int] = 6
MAX_COMMENT_LENGTH: Final[int] = 255
SORT_ORDER: Final[str] = "username,asc"


@dataclass(frozen=True)
class UserRecord:
    id: int | str
    username: str
    enabled: bool
    comment: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    created_by: str | None = None
    updated_by: str | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> UserRecord:
        return cls(
            id=data["id"],
            username=str(data.get("username") or ""),
            enabled=bool(data.get("enabled", False)),
            comment=data.get("comment"),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
            created_by=data.get("createdBy"),
            updated_by=data.get("updatedBy"),
        )


@dataclass(frozen=True)
class PageWindow:
    page_index: int
    page_size: int
    total_elements: int
    total_pages: int
    search_term: str | None = None

    @property
    def has_previous(self) -> bool:
        return self.page_index > 0

    @property
    def has_next(self) -> bool:
        return self.total_pages > 0 and self.page_index < self.total_pages - 1

    @property
    def in_range(self) -> bool:
        return self.total_pages == 0 or self.page_index < self.total_pages


@dataclass(frozen=True)
class UserPage:
    records: list[UserRecord]
    window: PageWindow


@dataclass(frozen=True)
class DirectoryQuery:
    """What the user asked to see. Zero-based page index."""

    page_index: int = 0
    page_size: int = 25
    search_term: str | None = None

    def with_page_size(self, page_size: int) -> DirectoryQuery:
        return replace(self, page_index=0, page_size=page_size)

    def with_search(self, search_term: str | None) -> DirectoryQuery:
        term = (search_term or "").strip() or None
        return replace(self, page_index=0, search_term=term)

    def previous(self, window: PageWindow) -> DirectoryQuery | None:
        if not window.has_previous:
            return None
        return replace(self, page_index=window.page_index - 1)

    def next(self, window: PageWindow) -> DirectoryQuery | None:
        if not window.has_next:
            return None
        return replace(self, page_index=window.page_index + 1)


@dataclass(frozen=True)
class NewUser:
    username: str
    enabled: bool = True
    password: str | None = None
    comment: str | None = None

    def to_payload(self) -> dict[str, Any]:
        username = _validate_username(self.username)
        comment = _validate_comment(self.comment)
        payload: dict[str, Any] = {"username": username, "enabled": bool(self.enabled)}
        if self.password:
            if len(self.password) < MIN_PASSWORD_LENGTH:
                raise ValidationError(
                    "password",
                    f"Password must be at least {MIN_PASSWORD_LENGTH} characters.",
                )
            payload["password"] = self.password
        if comment is not None:
            payload["comment"] = comment
        return payload


@dataclass(frozen=True)
class UserUpdate:
    """Full replacement of the mutable fields. Passwords cannot be changed here."""

    username: str
    enabled: bool
    comment: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "username": _validate_username(self.username),
            "enabled": bool(self.enabled),
        }
        comment = _validate_comment(self.comment)
        if comment is not None:
            payload["comment"] = comment
        return payload


def _validate_username(raw: str) -> str:
    username = (raw or "").strip()
    if len(username) < MIN_USERNAME_LENGTH:
        raise ValidationError(
            "username",
            f"Username must be at least {MIN_USERNAME_LENGTH} characters.",
        )
    return username


def _validate_comment(raw: str | None) -> str | None:
    comment = (raw or "").strip()
    if len(comment) > MAX_COMMENT_LENGTH:
        raise ValidationError(
            "comment",
            f"Comment must be at most {MAX_COMMENT_LENGTH} characters.",
        )
    return comment or None


def _parse_page(body: Any, *, page_size: int, search_term: str | None) -> UserPage:
    if not isinstance(body, dict):
        raise ValueError("users response must be an object")

    embedded = body.get("_embedded") or {}
    raw_users = (embedded.get("users") or []) if isinstance(embedded, dict) else []
    records = [UserRecord.from_api(u) for u in raw_users]

    page = body.get("page") or {}
    window = PageWindow(
        page_index=int(page.get("number", 0)),
        page_size=int(page.get("size", page_size)),
        total_elements=int(page.get("totalElements", len(records))),
        total_pages=int(page.get("totalPages", 1 if records else 0)),
        search_term=search_term,
    )
    return UserPage(records=records, window=window)


class UserDirectoryClient:
    """CRUD over the backend's user collection.

    Mutations return nothing: after any successful create/update/delete the
    caller re-lists with its current query to show the authoritative state.
    """

    def __init__(self, http: httpx.AsyncClient, token: str, *, path: str = "/users") -> None:
        self._http = http
        self._token = token
        self._path = path.rstrip("/")

    async def _send(
        self,
        method: str,
        url: str,
        error_cls: type[DirectoryError],
        **kwargs: Any,
    ) -> httpx.Response:
        try:
            response = await self._http.request(
                method, url, headers=bearer_headers(self._token), **kwargs
            )
        except httpx.RequestError as e:
            logger.warning("%s %s failed: %s", method, url, e)
            raise error_cls() from e

        if not response.is_success:
            logger.warning("%s %s returned HTTP %s", method, url, response.status_code)
            raise error_cls(status=response.status_code, detail=error_detail(response))
        return response

    async def list_users(
        self, page_index: int, page_size: int, search_term: str | None = None
    ) -> UserPage:
        params: dict[str, Any] = {"page": page_index, "size": page_size, "sort": SORT_ORDER}
        term = (search_term or "").strip() or None
        if term:
            params["search"] = term

        response = await self._send("GET", self._path, LoadError, params=params)
        try:
            return _parse_page(response.json(), page_size=page_size, search_term=term)
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning("Unparsable users page: %s", e)
            raise LoadError(status=response.status_code, detail="Malformed response.") from e

    async def create_user(self, user: NewUser) -> None:
        payload = user.to_payload()
        await self._send("POST", self._path, CreateError, json=payload)
        logger.info("Created user %s", payload["username"])

    async def update_user(self, user_id: int | str, update: UserUpdate) -> None:
        payload = update.to_payload()
        await self._send("PUT", f"{self._path}/{user_id}", UpdateError, json=payload)
        logger.info("Updated user %s", user_id)

    async def delete_user(self, user_id: int | str) -> None:
        await self._send("DELETE", f"{self._path}/{user_id}", DeleteError)
        logger.info("Deleted user %s", user_id)


async def load_page(client: UserDirectoryClient, query: DirectoryQuery) -> UserPage:
    """List ``query``, falling back to the last page if it no longer exists."""

    page = await client.list_users(query.page_index, query.page_size, query.search_term)
    if page.window.in_range:
        return page
    last = page.window.total_pages - 1
    return await client.list_users(last, query.page_size, query.search_term)
