"""
Typed failures raised by the trade executor and the ledger stores.

Every error carries a stable ``code`` for clients and metrics, a short
user-facing ``message`` and the HTTP status the API maps it to.  The
client shows the message as-is, so it stays specific to the failure
kind.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class TradeError(Exception):
    """Base class for every ledger failure."""

    code = "trade_error"
    message = "Trade failed"
    http_status = 400

    def __init__(self, message: Optional[str] = None, **details: Any) -> None:
        super().__init__(message or self.message)
        if message:
            self.message = message
        self.details: Dict[str, Any] = details

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class InvalidQuantity(TradeError):
    code = "invalid_quantity"
    message = "Quantity must be a positive number of shares"


class InvalidPrice(TradeError):
    code = "invalid_price"
    message = "Price must be positive"


class InvalidBalance(TradeError):
    code = "invalid_balance"
    message = "Balance must not be negative"


class InsufficientFunds(TradeError):
    code = "insufficient_funds"
    message = "Not enough money to buy"


class InsufficientShares(TradeError):
    code = "insufficient_shares"
    message = "Insufficient quantity to sell"


class NoPosition(InsufficientShares):
    code = "no_position"
    message = "Stock not found in the portfolio"
    http_status = 404


class PriceOutOfBand(TradeError):
    code = "price_out_of_band"
    message = "Price differs too much from the current quote"
    http_status = 422


class DuplicateIntent(TradeError):
    code = "duplicate_intent"
    message = "Trade was already applied"
    http_status = 409


class StoreError(TradeError):
    """The ledger store could not complete a read or commit."""

    code = "store_error"
    message = "Ledger storage error"
    http_status = 500


class StoreConflict(StoreError):
    """A compare-and-swap expectation did not match the stored record."""

    code = "concurrent_update"
    message = "Ledger changed concurrently, please retry"
    http_status = 409


class StoreUnavailable(StoreError):
    code = "store_unavailable"
    message = "Ledger storage is unavailable"
    http_status = 503


class StoreCorruption(StoreError):
    """A stored record violates a ledger invariant.  Never repaired."""

    code = "store_corruption"
    message = "Ledger data is inconsistent"
    http_status = 500
