"""
Entry point for the ledger service.

This module wires the configured ledger store, trade executor, event
bus, metrics service and HTTP API together and runs them until the
process is interrupted.  Configuration comes from the environment (see
:mod:`papertrade.config`).

The wallet is seeded on start-up if the store has none, so the first
boot against an empty database or file starts with the configured seed
balance.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from aiohttp import web

from .api import create_app
from .clients.finnhub_quotes import FinnhubQuoteClient
from .config import LedgerSettings
from .services.db_ledger_store import DatabaseLedgerStore
from .services.event_bus import EventBus
from .services.file_ledger_store import FileLedgerStore
from .services.ledger_query import LedgerQuery
from .services.ledger_store import InMemoryLedgerStore, LedgerStore
from .services.metrics_service import MetricsService
from .services.price_cache import PriceCache
from .services.trade_executor import TradeExecutor

logger = logging.getLogger(__name__)


def build_store(settings: LedgerSettings) -> LedgerStore:
    """Select the store backend from the settings."""
    if settings.state_store_uri:
        return DatabaseLedgerStore.from_uri(settings.state_store_uri)
    if settings.ledger_store_path:
        return FileLedgerStore(settings.ledger_store_path)
    logger.warning("No STATE_STORE_URI or LEDGER_STORE_PATH set; ledger is kept in memory only")
    return InMemoryLedgerStore()


async def main(settings: Optional[LedgerSettings] = None) -> None:
    """Run the API and metrics service until cancelled."""
    settings = settings or LedgerSettings.from_env()
    logging.basicConfig(level=settings.log_level)

    store = build_store(settings)
    await store.initialize(settings.seed_balance)

    quotes: Optional[FinnhubQuoteClient] = None
    quote_source: Optional[PriceCache] = None
    if settings.finnhub_api_key:
        quotes = FinnhubQuoteClient(
            settings.finnhub_api_key,
            base_url=settings.finnhub_base_url,
            timeout=settings.store_timeout_seconds,
        )
        quote_source = PriceCache(upstream=quotes, max_age_seconds=15)
    elif settings.price_band_pct > 0:
        logger.warning("PRICE_BAND_PCT is set but FINNHUB_API_KEY is not; price checks disabled")

    event_bus = EventBus()
    metrics = MetricsService(event_bus, port=settings.prometheus_port or None)
    executor = TradeExecutor(
        store,
        store_timeout=settings.store_timeout_seconds,
        quote_source=quote_source,
        price_band_pct=settings.price_band_pct,
        event_bus=event_bus,
    )
    app = create_app(executor, LedgerQuery(store))

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host=settings.http_host, port=settings.http_port)
    await site.start()
    logger.info(
        "Ledger API listening on %s:%d (%s store)",
        settings.http_host,
        settings.http_port,
        settings.store_backend,
    )
    try:
        await metrics.run()
    finally:
        await runner.cleanup()
        if quotes is not None:
            await quotes.close()
        await store.close()
        logger.info("Ledger service exiting")


def run() -> None:
    """Console script entry point."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
