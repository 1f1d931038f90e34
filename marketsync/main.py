"""Application entry point.

Command-line front end over the container: acquire one listing, extract a
product from any supported marketplace, run best-sellers discovery, link a
seller shop, or sync linked accounts into the catalog. Results are printed as
JSON; errors are printed as their structured form with a non-zero exit code.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from .core.container import Container
from .errors import MarketSyncError
from .logging_config import setup_logging
from .models import SearchOptions, SyncOptions

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="marketsync", description=__doc__.splitlines()[0])
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    commands = parser.add_subparsers(dest="command", required=True)

    acquire = commands.add_parser("acquire", help="Acquire and normalize one Etsy listing")
    acquire.add_argument("url")

    extract = commands.add_parser("extract", help="Extract a product from any marketplace URL")
    extract.add_argument("url")

    search = commands.add_parser("search", help="Discover listings")
    search.add_argument("--query", default="")
    search.add_argument("--strategy", choices=["best-sellers", "keyword"], default="best-sellers")
    search.add_argument("--category", default=None)
    search.add_argument("--limit", type=int, default=10)

    authorize = commands.add_parser("authorize-url", help="Print the OAuth consent URL")
    authorize.add_argument("--state", required=True)

    connect = commands.add_parser("connect", help="Link a seller shop from an OAuth authorization code")
    connect.add_argument("--user", required=True)
    connect.add_argument("--code", required=True)

    sync = commands.add_parser("sync", help="Sync linked seller accounts into the catalog")
    sync.add_argument("--account", default=None, help="Sync only this account id")
    sync.add_argument("--user", default=None, help="Sync only this user's accounts")
    sync.add_argument("--limit", type=int, default=None)
    sync.add_argument("--incremental", action="store_true")
    sync.add_argument("--resume", action="store_true")

    return parser


def _dump(value: Any) -> str:
    if isinstance(value, list):
        payload = [item.model_dump(mode="json") for item in value]
    elif hasattr(value, "model_dump"):
        payload = value.model_dump(mode="json")
    else:
        payload = value
    return json.dumps(payload, indent=2, ensure_ascii=False)


async def run_command(args: argparse.Namespace, container: Container) -> Any:
    """Execute one parsed CLI command and return its result."""
    match args.command:
        case "acquire":
            service = container.listing_service()
            try:
                return await service.acquire_listing(args.url)
            finally:
                await service.close()
        case "extract":
            return await container.extraction_service().extract(args.url)
        case "search":
            service = container.listing_service()
            try:
                options = SearchOptions(strategy=args.strategy, limit=args.limit, category=args.category)
                return await service.search(args.query, options)
            finally:
                await service.close()
        case "authorize-url":
            return {"url": container.etsy_client().build_authorization_url(args.state)}
        case "connect":
            client = container.etsy_client()
            try:
                return await container.sync_orchestrator().connect_account(args.user, args.code)
            finally:
                await client.close()
        case "sync":
            client = container.etsy_client()
            orchestrator = container.sync_orchestrator()
            options = SyncOptions(limit=args.limit, incremental=args.incremental, resume=args.resume)
            try:
                if args.account:
                    return await orchestrator.sync_account_by_id(args.account, options)
                return await orchestrator.sync_all_accounts(options, user_id=args.user)
            finally:
                await client.close()
    raise ValueError(f"Unknown command: {args.command}")


def main(argv: list[str] | None = None) -> int:
    """Run the CLI.

    Returns:
        Process exit code: 0 on success, 1 on a domain error.
    """
    args = build_parser().parse_args(argv)
    container = Container()
    settings = container.settings()
    setup_logging(args.log_level or settings.log_level)

    try:
        result = asyncio.run(run_command(args, container))
    except MarketSyncError as e:
        logger.error(f"{args.command} failed: {e.kind.value}: {e.message}")
        print(json.dumps({"error": e.to_dict()}, indent=2), file=sys.stderr)
        return 1

    print(_dump(result))
    return 0
