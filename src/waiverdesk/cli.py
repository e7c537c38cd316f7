"""Command-line interface for the waiver admin service."""

from __future__ import annotations

import argparse
import asyncio
import getpass
import logging
from typing import Optional

from .auth import create_admin_user
from .bootstrap import build_ranking, open_store
from .config import Settings, get_settings
from .errors import WaiverDeskError
from .formatting import format_signature_date
from .main import serve_http


async def _create_admin_async(settings: Settings, *, username: str, password: str) -> None:
    store = await open_store(settings)
    try:
        user_id = await create_admin_user(store, username, password, settings)
        print(f"Admin user '{username}' created (id={user_id})")
    finally:
        await store.close()


async def _search_async(settings: Settings, *, query: str | None, limit: int) -> None:
    store = await open_store(settings)
    try:
        ranking = build_ranking(store, settings)
        if query:
            results = await ranking.search(query)
            print(f"Search '{query}': {len(results)} result(s) (mode={ranking.mode})")
        else:
            results = await ranking.list_recent()
            print(f"Most recent waivers: {len(results)}")
        for candidate in results[:limit]:
            current = "current" if candidate.is_current_year else str(candidate.waiver_year)
            signed = format_signature_date(candidate.signature_timestamp)
            line = f"   - {candidate.id}: {candidate.display_name} ({current}, signed {signed})"
            if candidate.minor_names:
                line += f" minors: {candidate.minor_names}"
            print(line)
    finally:
        await store.close()


async def _status_async(settings: Settings) -> None:
    store = await open_store(settings)
    try:
        print(f"→ Database: {settings.database_path}")
        print(f"   Waivers stored: {await store.count_waivers()}")
        print(f"   Admin users: {len(await store.list_admins())}")
        print(f"   Match mode: {settings.match_mode} (threshold={settings.similarity_threshold})")
    finally:
        await store.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="CLI helpers for the waiver admin service",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser("serve", help="Run the admin HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Host/IP to bind")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to bind")
    serve_parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )

    admin_parser = subparsers.add_parser("create-admin", help="Create an admin account")
    admin_parser.add_argument("username", help="Login name for the new admin")
    admin_parser.add_argument(
        "--password",
        help="Password for the new admin (prompted when omitted)",
    )

    search_parser = subparsers.add_parser(
        "search", help="Search stored waivers, or list the most recent ones"
    )
    search_parser.add_argument("query", nargs="?", help="Name, minor name or birth year")
    search_parser.add_argument(
        "--limit",
        type=int,
        default=20,
        help="Maximum number of rows to print (default: 20)",
    )

    subparsers.add_parser("status", help="Display database statistics")

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = get_settings()

    if args.command == "serve":
        logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))
        asyncio.run(
            serve_http(
                settings,
                host=args.host,
                port=args.port,
                log_level=args.log_level,
            )
        )
        return 0

    try:
        if args.command == "create-admin":
            password = args.password or getpass.getpass("Password: ")
            asyncio.run(
                _create_admin_async(settings, username=args.username, password=password)
            )
            return 0

        if args.command == "search":
            asyncio.run(_search_async(settings, query=args.query, limit=args.limit))
            return 0

        if args.command == "status":
            asyncio.run(_status_async(settings))
            return 0
    except WaiverDeskError as exc:
        print(f"Error: {exc}")
        return 1

    parser.print_help()
    return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
