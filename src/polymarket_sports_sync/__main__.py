"""Command-line entry point.

Usage:
    polymarket-sports-sync init-db
    polymarket-sports-sync sync
    polymarket-sports-sync run
    polymarket-sports-sync events --date 2026-01-15 --search lakers
    polymarket-sports-sync markets --event-id <uuid> --page 2
    polymarket-sports-sync prices --market-id 512345 --side sell
    polymarket-sports-sync orderbooks --token-id <token>
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import ValidationError

from polymarket_sports_sync.config import Settings, get_settings
from polymarket_sports_sync.ingestor.clob_client import ClobClient
from polymarket_sports_sync.ingestor.gamma_client import GammaClient
from polymarket_sports_sync.query.service import QueryError, QueryService
from polymarket_sports_sync.storage.database import DatabaseManager
from polymarket_sports_sync.sync.service import CatalogSync, RunStatus

logger = logging.getLogger("polymarket_sports_sync")

EXIT_OK = 0
EXIT_SERVER_FAULT = 1
EXIT_CLIENT_FAULT = 2


def setup_logging(level: int) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )
    # Reduce noise from the HTTP stack
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="polymarket-sports-sync",
        description="Sync a Polymarket sports catalog into PostgreSQL and query it",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create the database schema")
    sub.add_parser("sync", help="Run one guarded reconciliation and print its summary")
    sub.add_parser("run", help="Reconcile on the configured interval until interrupted")

    events = sub.add_parser("events", help="List persisted events")
    _add_listing_args(events)

    markets = sub.add_parser("markets", help="List persisted markets")
    _add_listing_args(markets)
    markets.add_argument("--event-id", default=None, help="Parent event surrogate id")

    prices = sub.add_parser("prices", help="Live best prices")
    _add_lookup_args(prices)
    prices.add_argument("--side", default=None, help="buy (default) or sell")

    orderbooks = sub.add_parser("orderbooks", help="Live order books")
    _add_lookup_args(orderbooks)

    return parser


def _add_listing_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--search", default=None, help="Case-insensitive substring")
    parser.add_argument("--date", default=None, help="Calendar day (YYYY-MM-DD, UTC)")
    parser.add_argument("--page", default=None, help="Page number (default: 1)")
    parser.add_argument("--page-size", default=None, help="Page size (default: 50, max: 200)")


def _add_lookup_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--token-id", default=None, help="Outcome token id")
    parser.add_argument("--market-id", default=None, help="Upstream market id")
    parser.add_argument(
        "--market-ids",
        default=None,
        help="Comma-separated upstream market ids",
    )


def _split_ids(value: str | None) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


async def _with_database(
    settings: Settings,
    action: Callable[[DatabaseManager], Awaitable[int]],
) -> int:
    db = DatabaseManager(settings.database.url)
    try:
        return await action(db)
    finally:
        await db.dispose_async()


def _build_query_service(settings: Settings, db: DatabaseManager) -> QueryService:
    clob = ClobClient(
        host=settings.polymarket.clob_host,
        chain_id=settings.polymarket.clob_chain_id,
        requests_per_second=settings.polymarket.clob_requests_per_second,
    )
    return QueryService(
        db.get_async_session,
        clob,
        concurrency=settings.polymarket.live_lookup_concurrency,
    )


async def _cmd_init_db(settings: Settings, args: argparse.Namespace) -> int:
    async def action(db: DatabaseManager) -> int:
        await db.init_schema_async()
        return EXIT_OK

    return await _with_database(settings, action)


async def _cmd_sync(settings: Settings, args: argparse.Namespace) -> int:
    async def action(db: DatabaseManager) -> int:
        async with GammaClient(
            base_url=settings.gamma.base_url,
            timeout=settings.gamma.timeout_seconds,
        ) as gamma:
            sync = CatalogSync.from_settings(settings, gamma, db.get_async_session)
            summary = await sync.run_once()
        _print_json(summary.to_dict())
        return EXIT_SERVER_FAULT if summary.status is RunStatus.FAILED else EXIT_OK

    return await _with_database(settings, action)


async def _cmd_run(settings: Settings, args: argparse.Namespace) -> int:
    async def action(db: DatabaseManager) -> int:
        async with GammaClient(
            base_url=settings.gamma.base_url,
            timeout=settings.gamma.timeout_seconds,
        ) as gamma:
            sync = CatalogSync.from_settings(settings, gamma, db.get_async_session)
            stop_requested = asyncio.Event()
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, stop_requested.set)
            await sync.start()
            try:
                await stop_requested.wait()
            finally:
                await sync.stop()
        return EXIT_OK

    return await _with_database(settings, action)


async def _cmd_events(settings: Settings, args: argparse.Namespace) -> int:
    async def action(db: DatabaseManager) -> int:
        service = _build_query_service(settings, db)
        page = await service.list_events(
            search=args.search,
            date=args.date,
            page=args.page,
            page_size=args.page_size,
        )
        _print_json(page.to_dict(lambda item: item.to_dict()))
        return EXIT_OK

    return await _with_database(settings, action)


async def _cmd_markets(settings: Settings, args: argparse.Namespace) -> int:
    async def action(db: DatabaseManager) -> int:
        service = _build_query_service(settings, db)
        page = await service.list_markets(
            search=args.search,
            date=args.date,
            event_id=args.event_id,
            page=args.page,
            page_size=args.page_size,
        )
        _print_json(page.to_dict(lambda item: item.to_dict()))
        return EXIT_OK

    return await _with_database(settings, action)


async def _cmd_prices(settings: Settings, args: argparse.Namespace) -> int:
    async def action(db: DatabaseManager) -> int:
        service = _build_query_service(settings, db)
        result = await service.get_live_prices(
            token_id=args.token_id,
            market_id=args.market_id,
            market_ids=_split_ids(args.market_ids),
            side=args.side,
        )
        _print_json(result)
        return EXIT_OK

    return await _with_database(settings, action)


async def _cmd_orderbooks(settings: Settings, args: argparse.Namespace) -> int:
    async def action(db: DatabaseManager) -> int:
        service = _build_query_service(settings, db)
        result = await service.get_orderbooks(
            token_id=args.token_id,
            market_id=args.market_id,
            market_ids=_split_ids(args.market_ids),
        )
        _print_json(result)
        return EXIT_OK

    return await _with_database(settings, action)


COMMANDS: dict[str, Callable[[Settings, argparse.Namespace], Awaitable[int]]] = {
    "init-db": _cmd_init_db,
    "sync": _cmd_sync,
    "run": _cmd_run,
    "events": _cmd_events,
    "markets": _cmd_markets,
    "prices": _cmd_prices,
    "orderbooks": _cmd_orderbooks,
}


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    try:
        settings = get_settings()
    except ValidationError as e:
        print(f"Invalid configuration:\n{e}", file=sys.stderr)
        return EXIT_SERVER_FAULT
    setup_logging(logging.DEBUG if args.verbose else settings.get_logging_level())
    logger.debug("Settings: %s", settings.redacted_summary())

    try:
        return asyncio.run(COMMANDS[args.command](settings, args))
    except QueryError as e:
        logger.error("Invalid request (%d): %s", e.status_code, e)
        return EXIT_CLIENT_FAULT
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as e:
        logger.exception("Command %s failed: %s", args.command, e)
        return EXIT_SERVER_FAULT


if __name__ == "__main__":
    sys.exit(main())
