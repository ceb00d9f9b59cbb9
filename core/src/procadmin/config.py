from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

from procadmin.home import AdminPaths


class NetworkConfig(BaseModel):
    bind_host: str = Field(default="127.0.0.1")
    port: int = Field(default=8790, ge=1, le=65535)


class BackendConfig(BaseModel):
    """Location of the REST backend the console administers."""

    base_url: str = Field(default="http://127.0.0.1:8080/api")
    login_path: str = Field(default="/login")
    health_path: str = Field(default="/health")
    users_path: str = Field(default="/users")
    request_timeout_s: float | None = Field(
        default=None,
        gt=0,
        description=(
            "Client-side timeout for login and user calls. Unset means the transport's own "
            "limits apply."
        ),
    )
    health_timeout_s: float = Field(default=10.0, gt=0)
    health_interval_s: float = Field(default=60.0, gt=0)

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class LoginConfig(BaseModel):
    bot_url: str = Field(
        default="https://t.me/procadmin_bot",
        description="Messaging bot that issues one-time login codes (rendered as a link only).",
    )
    min_code_length: int = Field(default=4, ge=1)


class UsersConfig(BaseModel):
    default_page_size: int = Field(default=25, ge=1)
    page_size_options: list[int] = Field(default_factory=lambda: [10, 25, 50, 100])

    def normalize_page_size(self, raw: int | None) -> int:
        if raw is not None and raw in self.page_size_options:
            return raw
        return self.default_page_size


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO")
    max_size_mb: int = Field(
        default=10, ge=1, description="Max size of a log file in MB before rolling."
    )
    backup_count: int = Field(default=5, ge=1, description="Number of log archives to keep.")


class AdminConfig(BaseModel):
    version: str = Field(default="1")
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    backend: BackendConfig = Field(default_factory=BackendConfig)
    login: LoginConfig = Field(default_factory=LoginConfig)
    users: UsersConfig = Field(default_factory=UsersConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def _read_json(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def load_admin_config(paths: AdminPaths) -> AdminConfig:
    """Load config from ${PROCADMIN_HOME}/config/admin.json.

    - If missing: returns defaults.
    - Validation is performed by Pydantic.
    """

    config_path = paths.admin_config_path
    if not config_path.exists():
        return AdminConfig()

    raw = _read_json(config_path)
    return AdminConfig.model_validate(raw)


def write_admin_config(paths: AdminPaths, config: AdminConfig) -> None:
    """Persist config to ${PROCADMIN_HOME}/config/admin.json."""

    payload = config.model_dump(mode="json", exclude_none=True)
    paths.config_dir.mkdir(parents=True, exist_ok=True)
    paths.admin_config_path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")


def apply_env_overrides(config: AdminConfig, environ: Mapping[str, str]) -> AdminConfig:
    """Apply PROCADMIN_BACKEND_URL / PROCADMIN_BIND / PROCADMIN_PORT on top of the file config."""

    backend_url = (environ.get("PROCADMIN_BACKEND_URL") or "").strip()
    bind = (environ.get("PROCADMIN_BIND") or "").strip()
    port = (environ.get("PROCADMIN_PORT") or "").strip()

    updated = config
    if backend_url:
        backend = BackendConfig.model_validate(
            {**config.backend.model_dump(), "base_url": backend_url}
        )
        updated = updated.model_copy(update={"backend": backend})

    network_update: dict[str, Any] = {}
    if bind:
        network_update["bind_host"] = bind
    if port:
        network_update["port"] = int(port)
    if network_update:
        network = NetworkConfig.model_validate(
            {**config.network.model_dump(), **network_update}
        )
        updated = updated.model_copy(update={"network": network})

    return updated
