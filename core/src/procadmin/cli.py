from __future__ import annotations

import argparse
import asyncio
import logging
import os

import uvicorn

from procadmin.app import LOG_FORMAT, configure_file_logging, create_app
from procadmin.backend import build_backend_client
from procadmin.config import AdminConfig, apply_env_overrides, load_admin_config
from procadmin.errors import AdminError
from procadmin.health import HealthPoller, HealthSnapshot, HealthStatus, check_health
from procadmin.home import AdminPaths, ensure_admin_layout, resolve_admin_home
from procadmin.login import AuthClient
from procadmin.session import FileSessionStore


def _configure_logging(paths: AdminPaths, config: AdminConfig) -> None:
    logging.basicConfig(level=config.logging.level.upper(), format=LOG_FORMAT)
    configure_file_logging(paths, config)


def _format_snapshot(snapshot: HealthSnapshot) -> str:
    parts = [f"status={snapshot.status.value}", f"checked={snapshot.last_checked_at.isoformat()}"]
    if snapshot.server_timestamp:
        parts.append(f"server_time={snapshot.server_timestamp}")
    return " ".join(parts)


def _serve(config: AdminConfig) -> int:
    uvicorn.run(create_app(), host=config.network.bind_host, port=config.network.port)
    return 0


async def _login(config: AdminConfig, store: FileSessionStore, code: str) -> int:
    async with build_backend_client(config.backend) as http:
        client = AuthClient(
            http,
            login_path=config.backend.login_path,
            min_code_length=config.login.min_code_length,
        )
        try:
            token = await client.login(code)
            store.save(token)
        except AdminError as e:
            print(e.message)
            return 1
    print("Signed in.")
    return 0


async def _monitor(config: AdminConfig, store: FileSessionStore, *, once: bool) -> int:
    async with build_backend_client(config.backend) as http:
        if once:
            snapshot = await check_health(
                http,
                store.read(),
                path=config.backend.health_path,
                timeout_s=config.backend.health_timeout_s,
            )
            print(_format_snapshot(snapshot))
            return 0 if snapshot.status is HealthStatus.UP else 1

        poller = HealthPoller(
            http,
            store.read,
            path=config.backend.health_path,
            interval_s=config.backend.health_interval_s,
            timeout_s=config.backend.health_timeout_s,
            on_snapshot=lambda s: print(_format_snapshot(s), flush=True),
        )
        async with poller:
            await asyncio.Event().wait()
    return 0


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(prog="procadmin", description="ProcAdmin console")
    p.add_argument("--home", help="PROCADMIN_HOME path (defaults to the per-user data dir)")
    sub = p.add_subparsers(dest="command")

    sub.add_parser("serve", help="Run the web console")
    login_p = sub.add_parser("login", help="Sign in with a one-time code from the bot")
    login_p.add_argument("code")
    sub.add_parser("logout", help="Forget the stored session token")
    monitor_p = sub.add_parser("monitor", help="Poll backend health until Ctrl+C")
    monitor_p.add_argument("--once", action="store_true", help="Check once and exit")

    args = p.parse_args(argv)

    if args.home:
        os.environ["PROCADMIN_HOME"] = args.home

    paths = ensure_admin_layout(resolve_admin_home())
    config = apply_env_overrides(load_admin_config(paths), os.environ)
    store = FileSessionStore(paths.session_path)

    if args.command in (None, "serve"):
        _configure_logging(paths, config)
        return _serve(config)

    if args.command == "logout":
        store.clear()
        print("Signed out.")
        return 0

    if args.command == "login":
        return asyncio.run(_login(config, store, args.code))

    if args.command == "monitor":
        if not args.once and store.read() is None:
            print("Not signed in; health checks will be sent without a token.")
        try:
            return asyncio.run(_monitor(config, store, once=args.once))
        except KeyboardInterrupt:
            return 0

    p.print_help()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
