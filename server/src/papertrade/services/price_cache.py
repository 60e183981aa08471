"""
Price cache service for storing and retrieving the latest quote per
symbol.  It doubles as the in-process quote source consumed by the
trade executor's price guard, and as a read-through cache in front of
a remote quote client.

The cache enforces an optional max age; an expired entry is treated as
missing.  Prices are stored as :class:`decimal.Decimal`.
"""

from __future__ import annotations

import asyncio
import time
from decimal import Decimal
from typing import Dict, Optional, Protocol, Tuple

from ..models import normalize_symbol


class QuoteSourceError(Exception):
    """Raised by quote sources that could not produce a price."""


class QuoteSource(Protocol):
    """Anything that can report the current price of a symbol."""

    async def get_price(self, symbol: str) -> Optional[Decimal]:
        ...


class PriceCache:
    """Maintain a mapping of symbols to their latest price.

    The cache uses an asyncio lock so that concurrent updates and reads
    are properly synchronized.  When ``upstream`` is given, misses are
    fetched from it and stored.
    """

    def __init__(
        self,
        upstream: Optional[QuoteSource] = None,
        max_age_seconds: Optional[float] = None,
    ) -> None:
        self.upstream = upstream
        self.max_age_seconds = max_age_seconds
        self._prices: Dict[str, Tuple[Decimal, float]] = {}
        self._lock = asyncio.Lock()

    async def update_price(self, symbol: str, price: Decimal) -> None:
        """Store the latest price for a symbol."""
        async with self._lock:
            self._prices[normalize_symbol(symbol)] = (Decimal(price), time.monotonic())

    async def get_price(self, symbol: str) -> Optional[Decimal]:
        """Retrieve the most recent price for a symbol.

        Returns:
            The latest unexpired price, else the upstream quote if an
            upstream is configured, otherwise ``None``.
        """
        symbol = normalize_symbol(symbol)
        async with self._lock:
            entry = self._prices.get(symbol)
        if entry is not None:
            price, stamp = entry
            if self.max_age_seconds is None or time.monotonic() - stamp <= self.max_age_seconds:
                return price
        if self.upstream is None:
            return None
        price = await self.upstream.get_price(symbol)
        if price is not None:
            await self.update_price(symbol, price)
        return price

    async def all_prices(self) -> Dict[str, Decimal]:
        """Snapshot all stored prices, ignoring age."""
        async with self._lock:
            return {symbol: price for symbol, (price, _) in self._prices.items()}
