"""Read-side views over the ledger: holdings, balance and net worth."""

from __future__ import annotations

from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from ..models import Holding, Wallet
from .ledger_store import LedgerStore


def total_market_value(holdings: Iterable[Holding]) -> Decimal:
    return sum((h.market_value for h in holdings), Decimal(0))


def net_worth(wallet: Wallet, holdings: Iterable[Holding]) -> Decimal:
    """Cash plus the market value of every holding at its last observed price."""
    return wallet.balance + total_market_value(holdings)


class LedgerQuery:
    """Read-only access to a ledger store.  Safe to use alongside trades."""

    def __init__(self, store: LedgerStore) -> None:
        self.store = store

    async def wallet(self) -> Wallet:
        return await self.store.get_wallet()

    async def holding(self, symbol: str) -> Optional[Holding]:
        return await self.store.get_holding(symbol)

    async def holdings(self) -> List[Holding]:
        return await self.store.list_holdings()

    async def total_market_value(self) -> Decimal:
        return total_market_value(await self.store.list_holdings())

    async def net_worth(self) -> Decimal:
        snapshot = await self.store.snapshot()
        return net_worth(snapshot.wallet, snapshot.holdings)

    async def summary(self) -> Dict[str, Decimal]:
        """Balance, market value and net worth computed from one snapshot."""
        snapshot = await self.store.snapshot()
        market_value = total_market_value(snapshot.holdings)
        return {
            "balance": snapshot.wallet.balance,
            "totalMarketValue": market_value,
            "netWorth": snapshot.wallet.balance + market_value,
        }
