"""Backend health checks and the periodic poller used by the monitoring views.

A check never raises: every failure mode maps to a status in the snapshot.
The poller re-checks on a fixed interval regardless of the previous outcome.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any

import httpx

from procadmin.backend import bearer_headers
from procadmin.errors import HealthTimeoutError, NetworkError, ServerError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 10.0
DEFAULT_INTERVAL_S = 60.0
DEFAULT_TICK_S = 1.0


class HealthStatus(StrEnum):
    UP = "UP"
    DOWN = "DOWN"
    OUT_OF_SERVICE = "OUT_OF_SERVICE"
    UNKNOWN = "UNKNOWN"
    UNAVAILABLE = "UNAVAILABLE"


class PollerState(StrEnum):
    IDLE = "idle"
    CHECKING = "checking"
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    UNREACHABLE = "unreachable"


_ECHOED_STATUSES = {
    HealthStatus.UP,
    HealthStatus.DOWN,
    HealthStatus.OUT_OF_SERVICE,
    HealthStatus.UNKNOWN,
}


@dataclass(frozen=True)
class HealthSnapshot:
    status: HealthStatus
    last_checked_at: datetime
    server_timestamp: str | None = None

    @property
    def outcome(self) -> PollerState:
        if self.status is HealthStatus.UP:
            return PollerState.HEALTHY
        if self.status is HealthStatus.UNAVAILABLE:
            return PollerState.UNREACHABLE
        return PollerState.UNHEALTHY

    def as_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "state": self.outcome.value,
            "server_timestamp": self.server_timestamp,
            "last_checked_at": self.last_checked_at.isoformat(),
        }


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _status_from_body(body: Any) -> tuple[HealthStatus, str | None]:
    if not isinstance(body, dict):
        return HealthStatus.UNKNOWN, None

    raw_status = body.get("status")
    try:
        status = HealthStatus(str(raw_status).upper()) if raw_status else HealthStatus.UNKNOWN
    except ValueError:
        status = HealthStatus.UNKNOWN
    # UNAVAILABLE only ever describes a failed request.
    if status not in _ECHOED_STATUSES:
        status = HealthStatus.UNKNOWN

    ts = body.get("timestamp")
    return status, str(ts) if ts is not None else None


async def _fetch_health(
    http: httpx.AsyncClient, token: str | None, *, path: str, timeout_s: float
) -> Any:
    try:
        response = await asyncio.wait_for(
            http.get(path, headers=bearer_headers(token)), timeout=timeout_s
        )
    except TimeoutError as e:
        raise HealthTimeoutError() from e
    except httpx.RequestError as e:
        raise NetworkError(str(e)) from e

    if not response.is_success:
        raise ServerError(response.status_code)

    try:
        return response.json()
    except ValueError as e:
        raise NetworkError("Health response could not be parsed.") from e


async def check_health(
    http: httpx.AsyncClient,
    token: str | None,
    *,
    path: str = "/health",
    timeout_s: float = DEFAULT_TIMEOUT_S,
    now: Callable[[], datetime] = _utc_now,
) -> HealthSnapshot:
    """Run one health check and classify the result."""

    try:
        body = await _fetch_health(http, token, path=path, timeout_s=timeout_s)
    except ServerError as e:
        logger.info("Health check returned HTTP %s", e.status)
        return HealthSnapshot(status=HealthStatus.DOWN, last_checked_at=now())
    except NetworkError as e:
        logger.info("Health check failed: %s", e.message)
        return HealthSnapshot(status=HealthStatus.UNAVAILABLE, last_checked_at=now())

    status, server_ts = _status_from_body(body)
    return HealthSnapshot(status=status, last_checked_at=now(), server_timestamp=server_ts)


class ServerClock:
    """Display-only server time, extrapolated locally between checks."""

    def __init__(self) -> None:
        self._value: datetime | None = None

    @property
    def value(self) -> datetime | None:
        return self._value

    def seed(self, raw: str | None) -> None:
        if not raw:
            return
        try:
            parsed = datetime.fromisoformat(raw.strip())
        except ValueError:
            logger.debug("Ignoring unparsable server timestamp %r", raw)
            return
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        self._value = parsed

    def tick(self, seconds: float = DEFAULT_TICK_S) -> None:
        if self._value is not None:
            self._value = self._value + timedelta(seconds=seconds)


class HealthPoller:
    """Polls the health endpoint on a fixed interval.

    ``token_source`` is called before every check, so a logout or re-login
    through the session store takes effect on the next tick.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        token_source: Callable[[], str | None],
        *,
        path: str = "/health",
        interval_s: float = DEFAULT_INTERVAL_S,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        tick_s: float = DEFAULT_TICK_S,
        on_snapshot: Callable[[HealthSnapshot], None] | None = None,
        now: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._http = http
        self._token_source = token_source
        self._path = path
        self._interval_s = interval_s
        self._timeout_s = timeout_s
        self._tick_s = tick_s
        self._on_snapshot = on_snapshot
        self._now = now

        self.state = PollerState.IDLE
        self.snapshot: HealthSnapshot | None = None
        self.clock = ServerClock()

        self._poll_task: asyncio.Task[None] | None = None
        self._clock_task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    async def check_now(self) -> HealthSnapshot:
        self.state = PollerState.CHECKING
        snapshot = await check_health(
            self._http,
            self._token_source(),
            path=self._path,
            timeout_s=self._timeout_s,
            now=self._now,
        )
        self.snapshot = snapshot
        self.state = snapshot.outcome
        self.clock.seed(snapshot.server_timestamp)
        if self._on_snapshot is not None:
            self._on_snapshot(snapshot)
        return snapshot

    async def _poll_loop(self) -> None:
        while True:
            try:
                await self.check_now()
            except Exception:
                # A failed check or callback must not end polling.
                logger.exception("Health poll iteration failed")
            self.state = PollerState.IDLE
            await asyncio.sleep(self._interval_s)

    async def _clock_loop(self) -> None:
        while True:
            await asyncio.sleep(self._tick_s)
            self.clock.tick(self._tick_s)

    def start(self) -> None:
        if self.running:
            return
        self._poll_task = asyncio.create_task(self._poll_loop(), name="procadmin-health-poll")
        self._clock_task = asyncio.create_task(self._clock_loop(), name="procadmin-health-clock")

    async def stop(self) -> None:
        tasks = [t for t in (self._poll_task, self._clock_task) if t is not None]
        self._poll_task = None
        self._clock_task = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self.state = PollerState.IDLE

    async def __aenter__(self) -> HealthPoller:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()
