"""
Ledger store contract and in-memory implementation.

A ledger store owns exactly one :class:`Wallet` record and a mapping
from symbol to :class:`Holding`.  The trade executor reads through the
getters and writes only through :meth:`LedgerStore.commit`, which must
apply every mutation passed to it or none of them.  Each mutation
carries the value the executor read (``expected_balance`` /
``expected_quantity``); a mismatch refuses the whole commit with
:class:`StoreConflict`, so two writers can never silently overwrite
each other.

Three backends implement the contract:

* :class:`InMemoryLedgerStore` (this module) – process-local state, used
  by tests and when no persistence is configured.
* :class:`~papertrade.services.file_ledger_store.FileLedgerStore` – a
  JSON document replaced atomically on every commit.
* :class:`~papertrade.services.db_ledger_store.DatabaseLedgerStore` –
  SQLAlchemy async engine, one database transaction per commit.

Stored records are checked on every read.  A negative balance, a
missing wallet or a holding with fewer than one share is reported as
:class:`StoreCorruption` and never repaired.
"""

from __future__ import annotations

import abc
import asyncio
import logging
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Set, Tuple

from ..errors import DuplicateIntent, StoreConflict, StoreCorruption
from ..models import (
    Holding,
    HoldingDelete,
    HoldingUpsert,
    IntentStatus,
    LedgerMutation,
    LedgerSnapshot,
    Wallet,
    WalletUpdate,
    normalize_symbol,
)

logger = logging.getLogger(__name__)

DEFAULT_SEED_BALANCE = Decimal("25000")
# NUMERIC(18, 8) holds ten integer digits.
MAX_BALANCE = Decimal("10000000000")


def check_wallet(wallet: Optional[Wallet]) -> Wallet:
    """Return ``wallet`` or raise :class:`StoreCorruption` if it breaks an invariant."""
    if wallet is None:
        raise StoreCorruption("Wallet record is missing")
    if wallet.balance < 0:
        raise StoreCorruption("Wallet balance is negative", balance=str(wallet.balance))
    return wallet


def check_holding(holding: Holding) -> Holding:
    """Return ``holding`` or raise :class:`StoreCorruption` if its quantity is not positive."""
    if holding.quantity < 1:
        raise StoreCorruption(
            f"Holding {holding.symbol} has non-positive quantity",
            symbol=holding.symbol,
            quantity=holding.quantity,
        )
    return holding


class LedgerStore(abc.ABC):
    """Asynchronous storage for the wallet and holdings."""

    @abc.abstractmethod
    async def initialize(self, seed_balance: Decimal = DEFAULT_SEED_BALANCE) -> None:
        """Prepare storage and create the wallet with ``seed_balance`` if absent."""

    @abc.abstractmethod
    async def get_wallet(self) -> Wallet:
        ...

    @abc.abstractmethod
    async def get_holding(self, symbol: str) -> Optional[Holding]:
        ...

    @abc.abstractmethod
    async def list_holdings(self) -> List[Holding]:
        """Return all holdings in insertion order."""

    @abc.abstractmethod
    async def snapshot(self) -> LedgerSnapshot:
        """Return the wallet and holdings as one consistent read."""

    @abc.abstractmethod
    async def commit(
        self, mutations: Sequence[LedgerMutation], intent_id: Optional[str] = None
    ) -> None:
        """Apply ``mutations`` atomically.

        Args:
            mutations: Wallet and holding changes to apply together.
            intent_id: Optional idempotency key recorded in the same
                atomic unit.  Committing an id twice raises
                :class:`DuplicateIntent`.

        Raises:
            StoreConflict: An ``expected_*`` value did not match.
            StoreUnavailable: The backend could not be reached.
        """

    @abc.abstractmethod
    async def intent_status(self, intent_id: str) -> IntentStatus:
        ...

    async def close(self) -> None:
        """Release backend resources."""
        return None


class InMemoryLedgerStore(LedgerStore):
    """Ledger state held in process memory.

    Commits are staged against copies of the current records and swapped
    in only once every mutation has been applied, so a failure in any
    mutation leaves the visible state untouched.
    """

    def __init__(self) -> None:
        self._wallet: Optional[Wallet] = None
        self._holdings: Dict[str, Holding] = {}
        self._intents: Set[str] = set()
        self._lock = asyncio.Lock()

    async def initialize(self, seed_balance: Decimal = DEFAULT_SEED_BALANCE) -> None:
        async with self._lock:
            if self._wallet is None:
                self._wallet = Wallet(balance=Decimal(seed_balance))
                logger.info("Wallet balance initialized to %s", seed_balance)

    async def get_wallet(self) -> Wallet:
        return check_wallet(self._wallet)

    async def get_holding(self, symbol: str) -> Optional[Holding]:
        holding = self._holdings.get(normalize_symbol(symbol))
        if holding is None:
            return None
        return check_holding(holding)

    async def list_holdings(self) -> List[Holding]:
        return [check_holding(h) for h in self._holdings.values()]

    async def snapshot(self) -> LedgerSnapshot:
        wallet = check_wallet(self._wallet)
        holdings = [check_holding(h) for h in self._holdings.values()]
        return LedgerSnapshot(wallet=wallet, holdings=holdings)

    async def commit(
        self, mutations: Sequence[LedgerMutation], intent_id: Optional[str] = None
    ) -> None:
        async with self._lock:
            if intent_id is not None and intent_id in self._intents:
                raise DuplicateIntent(intent_id=intent_id)
            wallet, holdings = self._stage(mutations)
            intents = set(self._intents)
            if intent_id is not None:
                intents.add(intent_id)
            await self._persist(wallet, holdings, intents)
            # No await between here and the end: the swap is all-or-nothing.
            self._wallet = wallet
            self._holdings = holdings
            self._intents = intents

    async def intent_status(self, intent_id: str) -> IntentStatus:
        if intent_id in self._intents:
            return IntentStatus.APPLIED
        return IntentStatus.UNKNOWN

    async def _persist(
        self, wallet: Optional[Wallet], holdings: Dict[str, Holding], intents: Set[str]
    ) -> None:
        """Make staged state durable before it becomes visible.  No-op in memory."""
        return None

    def _stage(
        self, mutations: Sequence[LedgerMutation]
    ) -> Tuple[Optional[Wallet], Dict[str, Holding]]:
        wallet = self._wallet
        holdings = dict(self._holdings)
        for mutation in mutations:
            if isinstance(mutation, WalletUpdate):
                wallet = self._apply_wallet_update(wallet, mutation)
            elif isinstance(mutation, HoldingUpsert):
                self._apply_holding_upsert(holdings, mutation)
            elif isinstance(mutation, HoldingDelete):
                self._apply_holding_delete(holdings, mutation)
            else:
                raise TypeError(f"Unsupported ledger mutation: {mutation!r}")
        return wallet, holdings

    def _apply_wallet_update(self, wallet: Optional[Wallet], mutation: WalletUpdate) -> Wallet:
        current = check_wallet(wallet)
        if mutation.expected_balance is not None and current.balance != mutation.expected_balance:
            raise StoreConflict(
                expected=str(mutation.expected_balance), actual=str(current.balance)
            )
        return Wallet(balance=mutation.balance)

    def _apply_holding_upsert(self, holdings: Dict[str, Holding], mutation: HoldingUpsert) -> None:
        symbol = mutation.holding.symbol
        current = holdings.get(symbol)
        current_quantity = current.quantity if current is not None else None
        if current_quantity != mutation.expected_quantity:
            raise StoreConflict(
                symbol=symbol, expected=mutation.expected_quantity, actual=current_quantity
            )
        # Re-assigning an existing key keeps its position in the ordering.
        holdings[symbol] = mutation.holding

    def _apply_holding_delete(self, holdings: Dict[str, Holding], mutation: HoldingDelete) -> None:
        current = holdings.get(mutation.symbol)
        if current is None or current.quantity != mutation.expected_quantity:
            raise StoreConflict(
                symbol=mutation.symbol,
                expected=mutation.expected_quantity,
                actual=current.quantity if current is not None else None,
            )
        del holdings[mutation.symbol]
