from __future__ import annotations

from typing import Any

import httpx

from procadmin.config import BackendConfig


def build_backend_client(
    config: BackendConfig, *, transport: httpx.AsyncBaseTransport | None = None
) -> httpx.AsyncClient:
    """Create the shared async client for the REST backend.

    Only the health check enforces its own deadline; everything else uses
    ``request_timeout_s`` (unset by default, so no client-side timeout).
    """

    return httpx.AsyncClient(
        base_url=config.base_url,
        timeout=httpx.Timeout(config.request_timeout_s),
        transport=transport,
        headers={"Accept": "application/json, text/plain;q=0.9"},
    )


def bearer_headers(token: str | None) -> dict[str, str]:
    if not token:
        return {}
    return {"Authorization": f"Bearer {token}"}


def error_detail(response: httpx.Response) -> str | None:
    """Best-effort human message from an error body (``message`` or ``detail``)."""

    try:
        body: Any = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    for key in ("message", "detail", "error"):
        value = body.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None
