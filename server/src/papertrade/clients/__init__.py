"""Outbound clients for market data providers."""

from .finnhub_quotes import FinnhubQuoteClient  # noqa: F401
