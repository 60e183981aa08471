"""
Domain models for the paper-trading ledger using Pydantic.  These
models provide validation and serialization for the wallet, holdings,
trade intents and the store mutations that settle them.  Field names
are snake_case in Python and camelCase on the wire so that the mobile
client keeps its original JSON contract (``totalCost``,
``averageCostPerShare`` ...).

Money is carried as :class:`decimal.Decimal` throughout; quantities are
whole shares.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def normalize_symbol(symbol: str) -> str:
    """Return the canonical form of a ticker symbol (``" aapl"`` -> ``"AAPL"``)."""
    return symbol.strip().upper()


class LedgerModel(BaseModel):
    """Base class: camelCase aliases, population by either name, immutable."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class Side(str, Enum):
    BUY = "buy"
    SELL = "sell"


class IntentStatus(str, Enum):
    """Whether a trade intent id has been committed to the ledger."""

    APPLIED = "applied"
    UNKNOWN = "unknown"


class Wallet(LedgerModel):
    """The single cash balance shared by every trade."""

    balance: Decimal = Field(..., ge=0, description="Available virtual cash")


class Holding(LedgerModel):
    """Shares owned in one symbol together with their cost basis."""

    symbol: str
    name: Optional[str] = None
    quantity: int = Field(..., ge=1)
    total_cost: Decimal
    average_cost_per_share: Decimal
    current_price: Decimal
    change: Decimal
    market_value: Decimal

    @field_validator("symbol")
    @classmethod
    def _normalize_symbol(cls, value: str) -> str:
        return normalize_symbol(value)

    @classmethod
    def at_price(
        cls,
        symbol: str,
        quantity: int,
        total_cost: Decimal,
        price: Decimal,
        name: Optional[str] = None,
    ) -> "Holding":
        """Build a holding and derive its per-share and valuation fields.

        ``change`` is ``average - price``: positive while the position is
        below its cost basis.  The UI colour-codes on that sign.
        """
        average = total_cost / quantity
        return cls(
            symbol=symbol,
            name=name,
            quantity=quantity,
            total_cost=total_cost,
            average_cost_per_share=average,
            current_price=price,
            change=average - price,
            market_value=price * quantity,
        )


class TradeIntent(LedgerModel):
    """An unvalidated request to buy or sell at an observed price.

    Quantity and price are deliberately unconstrained here; the trade
    executor owns those checks so that it can report typed failures.
    """

    symbol: str
    side: Side
    quantity: int
    price: Decimal
    name: Optional[str] = None
    intent_id: Optional[str] = None

    @field_validator("symbol")
    @classmethod
    def _normalize_symbol(cls, value: str) -> str:
        value = normalize_symbol(value)
        if not value:
            raise ValueError("symbol must not be empty")
        return value

    @property
    def notional(self) -> Decimal:
        return self.price * self.quantity


class LedgerDelta(LedgerModel):
    """What a settled trade changed.

    ``holding`` is the holding after the trade, or ``None`` when the
    sell closed the position (``removed`` is then true).
    """

    intent_id: Optional[str] = None
    symbol: str
    side: Side
    quantity: int
    price: Decimal
    amount: Decimal
    wallet: Wallet
    holding: Optional[Holding] = None
    removed: bool = False


class LedgerSnapshot(LedgerModel):
    """Wallet and holdings read together."""

    wallet: Wallet
    holdings: List[Holding] = Field(default_factory=list)


# Store mutations.  ``expected_*`` fields make every write a
# compare-and-swap against the value the executor read.


class WalletUpdate(LedgerModel):
    kind: Literal["wallet_update"] = "wallet_update"
    balance: Decimal = Field(..., ge=0)
    expected_balance: Optional[Decimal] = None


class HoldingUpsert(LedgerModel):
    kind: Literal["holding_upsert"] = "holding_upsert"
    holding: Holding
    # None means the holding must not exist yet.
    expected_quantity: Optional[int] = None


class HoldingDelete(LedgerModel):
    kind: Literal["holding_delete"] = "holding_delete"
    symbol: str
    expected_quantity: int

    @field_validator("symbol")
    @classmethod
    def _normalize_symbol(cls, value: str) -> str:
        return normalize_symbol(value)


LedgerMutation = Union[WalletUpdate, HoldingUpsert, HoldingDelete]
