"""
Trade executor.

This module settles buy and sell intents against a ledger store.  A
trade is validated, turned into a holding mutation and a wallet
mutation, and both are handed to the store in a single
``commit()`` so that the position and the cash balance can never
disagree.

Key features:

* Typed failures (see :mod:`papertrade.errors`) for every rejected
  trade; validation failures never reach the store's write path.
* Per-symbol locks plus one wallet lock, always taken in that order,
  around the read-modify-write.  A symbol lock exists only while a
  trade on that symbol holds or awaits it.  Wallet and holding are
  re-read under the locks on every call; nothing is cached between
  trades.
* Compare-and-swap mutations, so a writer in another process that
  slipped in between read and commit makes the commit fail with
  ``StoreConflict`` instead of being overwritten.
* A timeout on every store call.  A timed out call is cancelled, the
  store rolls back, and the trade fails with ``StoreUnavailable``.
* Optional idempotency: an ``intent_id`` is recorded atomically with
  the trade, a resubmission is refused with ``DuplicateIntent`` and
  :meth:`TradeExecutor.intent_status` tells the caller whether an
  attempt committed.
* Optional price guard: with a quote source and a non-zero band, the
  client price is checked against a fresh quote fetched once when the
  request arrives.

Note: ``sell`` reduces ``total_cost`` by the sale proceeds rather than
by the sold shares' share of the cost basis, and ``change`` is
``average - price``.  Both match the numbers the mobile client has
always displayed and are kept that way on purpose.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from decimal import Decimal
from typing import Any, AsyncIterator, Awaitable, Dict, List, Optional, Tuple, TypeVar

from ..errors import (
    DuplicateIntent,
    InsufficientFunds,
    InsufficientShares,
    InvalidBalance,
    InvalidPrice,
    InvalidQuantity,
    NoPosition,
    PriceOutOfBand,
    StoreCorruption,
    StoreUnavailable,
    TradeError,
)
from ..models import (
    Holding,
    HoldingDelete,
    HoldingUpsert,
    IntentStatus,
    LedgerDelta,
    LedgerMutation,
    Side,
    TradeIntent,
    Wallet,
    WalletUpdate,
)
from .ledger_store import MAX_BALANCE, LedgerStore
from .price_cache import QuoteSource, QuoteSourceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TradeExecutor:
    """Apply trade intents to a ledger store."""

    def __init__(
        self,
        store: LedgerStore,
        *,
        store_timeout: float = 5.0,
        quote_source: Optional[QuoteSource] = None,
        price_band_pct: float = 0.0,
        event_bus: Any = None,
    ) -> None:
        self.store = store
        self.store_timeout = store_timeout
        self.quote_source = quote_source
        self.price_band_pct = price_band_pct
        self.event_bus = event_bus
        # symbol -> (lock, tasks holding or waiting for it); dropped when unused
        self._symbol_locks: Dict[str, Tuple[asyncio.Lock, int]] = {}
        self._wallet_lock = asyncio.Lock()

    async def apply(self, intent: TradeIntent) -> LedgerDelta:
        """Settle ``intent`` and return what changed.

        :param intent: The trade to settle.  ``intent.price`` is used
            unchanged for validation and for the recorded values.
        :return: The new wallet and the affected holding.
        :raises TradeError: A subclass describing why nothing was applied.
        """
        try:
            delta = await self._apply(intent)
        except TradeError as exc:
            level = logging.ERROR if isinstance(exc, (StoreUnavailable, StoreCorruption)) else logging.WARNING
            logger.log(
                level,
                "Rejected %s %d %s@%s: %s",
                intent.side.value,
                intent.quantity,
                intent.symbol,
                intent.price,
                exc.message,
            )
            await self._publish(
                "trade_rejected",
                {
                    "symbol": intent.symbol,
                    "side": intent.side.value,
                    "code": exc.code,
                    "intentId": intent.intent_id,
                },
            )
            raise
        logger.info(
            "Applied %s %d %s@%s, wallet balance %s",
            delta.side.value,
            delta.quantity,
            delta.symbol,
            delta.price,
            delta.wallet.balance,
        )
        await self._publish("ledger_update", delta.model_dump(mode="json", by_alias=True))
        return delta

    async def buy(self, symbol: str, quantity: int, price: Decimal, **kwargs: Any) -> LedgerDelta:
        return await self.apply(
            TradeIntent(symbol=symbol, side=Side.BUY, quantity=quantity, price=price, **kwargs)
        )

    async def sell(self, symbol: str, quantity: int, price: Decimal, **kwargs: Any) -> LedgerDelta:
        return await self.apply(
            TradeIntent(symbol=symbol, side=Side.SELL, quantity=quantity, price=price, **kwargs)
        )

    async def set_balance(self, new_balance: Decimal) -> Wallet:
        """Overwrite the wallet balance.

        Serialised with trades on the wallet lock.
        """
        new_balance = Decimal(new_balance)
        if new_balance < 0:
            raise InvalidBalance(balance=str(new_balance))
        if new_balance >= MAX_BALANCE:
            raise InvalidBalance(
                f"Balance must be below {MAX_BALANCE}", balance=str(new_balance)
            )
        async with self._wallet_lock:
            wallet = await self._call(self.store.get_wallet())
            await self._call(
                self.store.commit(
                    [WalletUpdate(balance=new_balance, expected_balance=wallet.balance)]
                )
            )
        logger.info("Wallet balance overwritten: %s -> %s", wallet.balance, new_balance)
        updated = Wallet(balance=new_balance)
        await self._publish("wallet_update", updated.model_dump(mode="json", by_alias=True))
        return updated

    async def intent_status(self, intent_id: str) -> IntentStatus:
        return await self._call(self.store.intent_status(intent_id))

    async def _apply(self, intent: TradeIntent) -> LedgerDelta:
        if intent.quantity <= 0:
            raise InvalidQuantity(quantity=intent.quantity)
        if intent.price <= 0:
            raise InvalidPrice(price=str(intent.price))
        await self._check_price_band(intent)
        async with self._symbol_lock(intent.symbol):
            async with self._wallet_lock:
                if intent.intent_id is not None:
                    status = await self._call(self.store.intent_status(intent.intent_id))
                    if status is IntentStatus.APPLIED:
                        raise DuplicateIntent(intent_id=intent.intent_id)
                wallet = await self._call(self.store.get_wallet())
                holding = await self._call(self.store.get_holding(intent.symbol))
                if intent.side is Side.BUY:
                    mutations, delta = self._plan_buy(intent, wallet, holding)
                else:
                    mutations, delta = self._plan_sell(intent, wallet, holding)
                await self._call(self.store.commit(mutations, intent_id=intent.intent_id))
        return delta

    def _plan_buy(
        self, intent: TradeIntent, wallet: Wallet, holding: Optional[Holding]
    ) -> Tuple[List[LedgerMutation], LedgerDelta]:
        cost = intent.notional
        if cost > wallet.balance:
            raise InsufficientFunds(cost=str(cost), balance=str(wallet.balance))
        if holding is None:
            updated = Holding.at_price(
                intent.symbol, intent.quantity, cost, intent.price, name=intent.name
            )
            expected_quantity = None
        else:
            updated = Holding.at_price(
                intent.symbol,
                holding.quantity + intent.quantity,
                holding.total_cost + cost,
                intent.price,
                name=holding.name or intent.name,
            )
            expected_quantity = holding.quantity
        new_wallet = Wallet(balance=wallet.balance - cost)
        mutations: List[LedgerMutation] = [
            HoldingUpsert(holding=updated, expected_quantity=expected_quantity),
            WalletUpdate(balance=new_wallet.balance, expected_balance=wallet.balance),
        ]
        return mutations, self._delta(intent, cost, new_wallet, updated)

    def _plan_sell(
        self, intent: TradeIntent, wallet: Wallet, holding: Optional[Holding]
    ) -> Tuple[List[LedgerMutation], LedgerDelta]:
        if holding is None:
            raise NoPosition(symbol=intent.symbol)
        if holding.quantity < intent.quantity:
            raise InsufficientShares(held=holding.quantity, requested=intent.quantity)
        proceeds = intent.notional
        remaining = holding.quantity - intent.quantity
        new_wallet = Wallet(balance=wallet.balance + proceeds)
        wallet_update = WalletUpdate(balance=new_wallet.balance, expected_balance=wallet.balance)
        if remaining == 0:
            mutations: List[LedgerMutation] = [
                HoldingDelete(symbol=intent.symbol, expected_quantity=holding.quantity),
                wallet_update,
            ]
            return mutations, self._delta(intent, proceeds, new_wallet, None)
        updated = Holding.at_price(
            intent.symbol,
            remaining,
            holding.total_cost - proceeds,
            intent.price,
            name=holding.name,
        )
        mutations = [
            HoldingUpsert(holding=updated, expected_quantity=holding.quantity),
            wallet_update,
        ]
        return mutations, self._delta(intent, proceeds, new_wallet, updated)

    @staticmethod
    def _delta(
        intent: TradeIntent, amount: Decimal, wallet: Wallet, holding: Optional[Holding]
    ) -> LedgerDelta:
        return LedgerDelta(
            intent_id=intent.intent_id,
            symbol=intent.symbol,
            side=intent.side,
            quantity=intent.quantity,
            price=intent.price,
            amount=amount,
            wallet=wallet,
            holding=holding,
            removed=holding is None,
        )

    async def _check_price_band(self, intent: TradeIntent) -> None:
        if self.quote_source is None or self.price_band_pct <= 0:
            return
        try:
            reference = await asyncio.wait_for(
                self.quote_source.get_price(intent.symbol), self.store_timeout
            )
        except (QuoteSourceError, asyncio.TimeoutError) as exc:
            logger.warning("No quote for %s, skipping price check: %s", intent.symbol, exc)
            return
        if reference is None:
            logger.warning("No quote for %s, skipping price check", intent.symbol)
            return
        band = Decimal(str(self.price_band_pct)) / 100
        lower = reference * (1 - band)
        upper = reference * (1 + band)
        if not lower <= intent.price <= upper:
            raise PriceOutOfBand(
                price=str(intent.price), reference=str(reference), band_pct=self.price_band_pct
            )

    @contextlib.asynccontextmanager
    async def _symbol_lock(self, symbol: str) -> AsyncIterator[None]:
        lock, users = self._symbol_locks.get(symbol, (asyncio.Lock(), 0))
        self._symbol_locks[symbol] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._symbol_locks[symbol]
            if users == 1:
                del self._symbol_locks[symbol]
            else:
                self._symbol_locks[symbol] = (lock, users - 1)

    async def _call(self, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, self.store_timeout)
        except asyncio.TimeoutError as exc:
            raise StoreUnavailable(
                f"Ledger storage did not respond within {self.store_timeout}s"
            ) from exc

    async def _publish(self, event_type: str, payload: Dict[str, Any]) -> None:
        if self.event_bus is None:
            return
        await self.event_bus.publish(event_type, payload)
