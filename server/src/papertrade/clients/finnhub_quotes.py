"""
Finnhub quote client.

Asynchronous client for the Finnhub ``/quote`` endpoint, used as the
quote source behind the trade executor's price guard.  The endpoint
returns ``{"c": current, "d": change, "dp": percent, "h": ..., ...}``;
only the current price ``c`` is consumed.  Finnhub answers unknown
symbols with ``c == 0``, which is reported as "no quote" (``None``).

Transient failures (connection errors, 429 and 5xx responses) are
retried with exponential backoff via ``tenacity``.  After the last
attempt the error is raised as :class:`QuoteSourceError`.  A body that
is not a JSON object, or a non-numeric price, is raised as
:class:`QuoteSourceError` straight away.
"""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

import aiohttp
from tenacity import (
    RetryError,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..models import normalize_symbol
from ..services.price_cache import QuoteSourceError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://finnhub.io/api/v1"


class _RetryableResponse(Exception):
    pass


class FinnhubQuoteClient:
    """Fetch current prices from Finnhub."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 5.0,
        max_attempts: int = 3,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        """Construct the client.

        Args:
            api_key: Finnhub API token, sent as the ``token`` query parameter.
            base_url: API root, without trailing slash.
            timeout: Total timeout per HTTP request in seconds.
            max_attempts: Attempts per quote before giving up.
            session: Optional shared ``aiohttp.ClientSession``; one is
                created lazily otherwise and closed by :meth:`close`.
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.max_attempts = max_attempts
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def _fetch_quote(self, symbol: str) -> Dict[str, Any]:
        session = await self._get_session()
        url = f"{self.base_url}/quote"
        params = {"symbol": symbol, "token": self.api_key}
        async with session.get(url, params=params, timeout=self.timeout) as resp:
            if resp.status == 429 or resp.status >= 500:
                raise _RetryableResponse(f"Finnhub returned {resp.status}")
            if resp.status >= 400:
                text = await resp.text()
                # Avoid logging full response bodies
                logger.error("Finnhub quote error %s: %s", resp.status, text[:200])
                raise QuoteSourceError(f"Finnhub returned {resp.status}")
            try:
                quote = await resp.json(content_type=None)
            except ValueError as exc:
                raise QuoteSourceError(f"Finnhub returned a malformed quote: {exc}") from exc
            if not isinstance(quote, dict):
                raise QuoteSourceError(f"Finnhub returned a malformed quote: {quote!r}")
            return quote

    async def get_quote(self, symbol: str) -> Dict[str, Any]:
        """Return the raw quote document for ``symbol``."""
        retrying = retry(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=0.2, min=0.2, max=4),
            retry=retry_if_exception_type(
                (aiohttp.ClientError, asyncio.TimeoutError, _RetryableResponse)
            ),
        )
        try:
            return await retrying(self._fetch_quote)(normalize_symbol(symbol))
        except RetryError as exc:
            cause = exc.last_attempt.exception()
            raise QuoteSourceError(f"Quote for {symbol} unavailable: {cause}") from cause

    async def get_price(self, symbol: str) -> Optional[Decimal]:
        quote = await self.get_quote(symbol)
        current = quote.get("c")
        if not current:
            return None
        try:
            price = Decimal(str(current))
        except InvalidOperation as exc:
            raise QuoteSourceError(f"Finnhub returned a non-numeric price: {current!r}") from exc
        if not price.is_finite() or price < 0:
            raise QuoteSourceError(f"Finnhub returned an invalid price: {current!r}")
        return price

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
