"""
Paper-trading ledger service.

This package settles simulated buy and sell orders against a virtual
cash wallet and a portfolio of holdings, and serves both to the mobile
client over HTTP.  The pieces:

* ``models`` / ``errors`` – wallet, holding and trade types and the
  typed failures.
* ``services`` – ledger stores, the trade executor, read-side queries,
  the event bus, price cache and metrics.
* ``clients`` – outbound quote providers.
* ``api`` / ``main`` – the aiohttp application and its entry point.
"""

from .errors import TradeError  # noqa: F401
from .models import Holding, LedgerDelta, Side, TradeIntent, Wallet  # noqa: F401
from .services import LedgerQuery, TradeExecutor  # noqa: F401

__version__ = "0.1.0"
