from __future__ import annotations

from pathlib import Path

import httpx
import pytest

from procadmin import cli
from procadmin.config import BackendConfig
from procadmin.home import ensure_admin_layout
from procadmin.session import FileSessionStore


@pytest.fixture()
def fake_backend_client(monkeypatch, backend):
    def _build(config: BackendConfig, *, transport=None) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=config.base_url, transport=backend.transport)

    monkeypatch.setattr(cli, "build_backend_client", _build)
    return backend


def _store(home: Path) -> FileSessionStore:
    return FileSessionStore(ensure_admin_layout(home).session_path)


def test_login_persists_token_to_file(admin_home: Path, fake_backend_client, capsys) -> None:
    assert cli.main(["login", "1234"]) == 0
    assert "Signed in" in capsys.readouterr().out
    assert _store(admin_home).read() == "abc123xyz0"


def test_login_with_bad_code_keeps_store_empty(
    admin_home: Path, fake_backend_client, capsys
) -> None:
    assert cli.main(["login", "9999"]) == 1
    assert "Invalid code" in capsys.readouterr().out
    assert _store(admin_home).read() is None


def test_login_with_short_code_does_not_call_backend(
    admin_home: Path, fake_backend_client
) -> None:
    assert cli.main(["login", "12"]) == 1
    assert fake_backend_client.requests == []


def test_logout_clears_file_store(admin_home: Path) -> None:
    store = _store(admin_home)
    store.save("abc123xyz0")

    assert cli.main(["logout"]) == 0
    assert store.read() is None


def test_monitor_once_reports_status(admin_home: Path, fake_backend_client, capsys) -> None:
    _store(admin_home).save("abc123xyz0")

    assert cli.main(["monitor", "--once"]) == 0
    assert "status=UP" in capsys.readouterr().out

    fake_backend_client.health_response = httpx.Response(503)
    assert cli.main(["monitor", "--once"]) == 1
    assert "status=DOWN" in capsys.readouterr().out


def test_monitor_once_without_session_is_down(admin_home: Path, fake_backend_client, capsys) -> None:
    assert cli.main(["monitor", "--once"]) == 1
    assert "status=DOWN" in capsys.readouterr().out
