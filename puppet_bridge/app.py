from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Sequence

from .config import Settings
from .database.factory import build_database
from .database.puppet import Puppet
from .ids import RemoteID
from .puppets import PuppetManager

logger = logging.getLogger("puppet_bridge")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def _format_puppet(puppet: Puppet) -> str:
    last_sync = puppet.last_sync.isoformat() if puppet.last_sync else "never"
    linked = puppet.custom_mxid or "-"
    return (
        f"{puppet.remote_id}\tname={puppet.displayname!r} quality={puppet.name_quality} "
        f"avatar={str(puppet.avatar_url) or '-'} linked={linked} last_sync={last_sync} "
        f"activity={puppet.first_activity_ts}..{puppet.last_activity_ts}"
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="puppet-bridge", description="Inspect the bridge puppet table.")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("init", help="Create the puppet table if it does not exist.")
    list_parser = sub.add_parser("list", help="Print every puppet.")
    list_parser.add_argument("--linked", action="store_true", help="Only double-puppeted identities.")
    show_parser = sub.add_parser("show", help="Print one puppet.")
    show_parser.add_argument("user", help="Remote user, either 'user' or 'user@server'.")
    return parser


async def run(settings: Settings, args: argparse.Namespace) -> int:
    db = build_database(settings)
    try:
        await db.init()
        if args.command == "init":
            logger.info("Schema ready (%s)", db.backend_name)
            return 0

        manager = PuppetManager(db, user_server=settings.default_user_server)
        if args.command == "list":
            puppets = await (manager.get_double_puppets() if args.linked else manager.get_all_puppets())
            for puppet in puppets:
                print(_format_puppet(puppet))
            return 0

        remote_id = RemoteID.parse(args.user)
        if not remote_id.user:
            remote_id = RemoteID.new_user(args.user, settings.default_user_server)
        puppet = await manager.get_puppet(remote_id)
        if puppet is None:
            print(f"No puppet for {remote_id}")
            return 1
        print(_format_puppet(puppet))
        return 0
    finally:
        await db.close()


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    settings = Settings.from_env()
    settings.validate()
    configure_logging(settings.log_level)
    return asyncio.run(run(settings, args))
