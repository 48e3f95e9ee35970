from __future__ import annotations

import argparse
import asyncio
import json
import logging
from typing import Any, Sequence

from possync_sdk import ConfigError, UserResponse, UserRole, load_config

from .app.bootstrap import PosSyncBootstrap

logger = logging.getLogger(__name__)


def _print(payload: Any) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True, default=str))


async def _status(bootstrap: PosSyncBootstrap, args: argparse.Namespace) -> int:
    await bootstrap.engine.refresh_counts()
    state = bootstrap.state.connectivity
    _print(
        {
            "env": bootstrap.config.normalized_env,
            "data_dir": str(bootstrap.store.base_dir),
            "signed_in": bootstrap.session.is_authenticated,
            "pending": state.pending_count,
            "quarantined": await bootstrap.view.quarantined(),
        }
    )
    return 0


async def _sync(bootstrap: PosSyncBootstrap, args: argparse.Namespace) -> int:
    if not bootstrap.session.is_authenticated:
        print("Not signed in; run `possync login` first.")
        return 2
    report = await bootstrap.engine.drain()
    if report is None:
        print("Reconciliation skipped.")
        return 1
    _print(report.to_dict())
    return 0 if report.failed == 0 else 1


async def _watch(bootstrap: PosSyncBootstrap, args: argparse.Namespace) -> int:
    await bootstrap.start()
    try:
        await bootstrap.monitor.run(args.interval)
    finally:
        await bootstrap.shutdown()
    return 0


async def _requeue(bootstrap: PosSyncBootstrap, args: argparse.Namespace) -> int:
    record = await bootstrap.engine.requeue(args.bill_id)
    if record is None:
        print(f"No quarantined sale {args.bill_id}.")
        return 1
    print(f"Sale {record.bill_id} is queued again.")
    return 0


async def _dismiss(bootstrap: PosSyncBootstrap, args: argparse.Namespace) -> int:
    if not await bootstrap.engine.dismiss(args.bill_id):
        print(f"No quarantined sale {args.bill_id}.")
        return 1
    print(f"Sale {args.bill_id} dismissed.")
    return 0


async def _login(bootstrap: PosSyncBootstrap, args: argparse.Namespace) -> int:
    user = UserResponse(id=args.user_id, email=args.email, role=UserRole.ADMIN if args.admin else UserRole.USER)
    bootstrap.sign_in(args.token, user)
    print(f"Signed in as {args.user_id}.")
    return 0


async def _logout(bootstrap: PosSyncBootstrap, args: argparse.Namespace) -> int:
    bootstrap.sign_out()
    print("Signed out. Queued sales stay on this device.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="possync", description="Offline sale queue for the POS terminal")
    parser.add_argument("--env-file", default=None, help="Optional .env file to load before reading settings")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("status", help="Show pending and quarantined sales").set_defaults(handler=_status)
    commands.add_parser("sync", help="Run one reconciliation pass now").set_defaults(handler=_sync)

    watch = commands.add_parser("watch", help="Probe connectivity and drain whenever the backend returns")
    watch.add_argument("--interval", type=float, default=None, help="Seconds between probes")
    watch.set_defaults(handler=_watch)

    requeue = commands.add_parser("requeue", help="Move a quarantined sale back into the queue")
    requeue.add_argument("bill_id")
    requeue.set_defaults(handler=_requeue)

    dismiss = commands.add_parser("dismiss", help="Drop a quarantined sale for good")
    dismiss.add_argument("bill_id")
    dismiss.set_defaults(handler=_dismiss)

    login = commands.add_parser("login", help="Store an access token issued by the backend")
    login.add_argument("token")
    login.add_argument("--user-id", required=True)
    login.add_argument("--email", default=None)
    login.add_argument("--admin", action="store_true")
    login.set_defaults(handler=_login)

    commands.add_parser("logout", help="Forget the stored access token").set_defaults(handler=_logout)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    args = build_parser().parse_args(argv)
    try:
        bootstrap = PosSyncBootstrap(config=load_config(args.env_file))
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2
    try:
        return asyncio.run(args.handler(bootstrap, args))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
