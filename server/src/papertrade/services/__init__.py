"""Service layer for the ledger.

This package exposes the ledger stores, the trade executor and the
supporting services (event bus, price cache, metrics).
"""

from .event_bus import EventBus  # noqa: F401
from .file_ledger_store import FileLedgerStore  # noqa: F401
from .ledger_query import LedgerQuery, net_worth, total_market_value  # noqa: F401
from .ledger_store import InMemoryLedgerStore, LedgerStore  # noqa: F401
from .price_cache import PriceCache, QuoteSource, QuoteSourceError  # noqa: F401
from .trade_executor import TradeExecutor  # noqa: F401
