"""Location of the console's on-disk state: config, logs and the CLI session."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

HOME_ENV = "PROCADMIN_HOME"

_SUBDIRS = ("config", "logs", "run")


@dataclass(frozen=True)
class AdminPaths:
    home: Path
    config_dir: Path
    logs_dir: Path
    run_dir: Path

    @property
    def admin_config_path(self) -> Path:
        return self.config_dir / "admin.json"

    @property
    def session_path(self) -> Path:
        return self.run_dir / "session.json"


def resolve_admin_home(environ: Mapping[str, str] | None = None) -> Path:
    """Pick the state directory.

    ``PROCADMIN_HOME`` wins; relative values hang off the user's home so the
    result does not depend on where the CLI was started. Otherwise the session
    token is state, so ``$XDG_STATE_HOME/procadmin`` (or ``~/.procadmin``).
    """

    env = os.environ if environ is None else environ

    explicit = (env.get(HOME_ENV) or "").strip()
    if explicit:
        chosen = Path(explicit).expanduser()
        if not chosen.is_absolute():
            chosen = Path.home() / chosen
        return chosen.resolve()

    state_root = (env.get("XDG_STATE_HOME") or "").strip()
    if state_root:
        return (Path(state_root) / "procadmin").resolve()
    return (Path.home() / ".procadmin").resolve()


def ensure_admin_layout(home: Path) -> AdminPaths:
    config_dir, logs_dir, run_dir = (home / name for name in _SUBDIRS)
    for path in (home, config_dir, logs_dir, run_dir):
        path.mkdir(parents=True, exist_ok=True)
    # The run dir holds the bearer token.
    run_dir.chmod(0o700)
    return AdminPaths(home=home, config_dir=config_dir, logs_dir=logs_dir, run_dir=run_dir)
