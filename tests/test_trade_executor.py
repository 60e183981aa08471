"""Tests for the TradeExecutor.

These tests drive buys and sells through an in-memory ledger store and
verify the wallet, the holdings and the events published on the bus.
The walkthrough in ``test_buy_then_sell_walkthrough`` follows the
numbers the mobile client shows for a simple AAPL round trip.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from papertrade.errors import (
    DuplicateIntent,
    InsufficientFunds,
    InsufficientShares,
    InvalidBalance,
    InvalidPrice,
    InvalidQuantity,
    NoPosition,
    PriceOutOfBand,
)
from papertrade.models import IntentStatus, Side, TradeIntent
from papertrade.services.ledger_store import InMemoryLedgerStore
from papertrade.services.price_cache import PriceCache, QuoteSourceError
from papertrade.services.trade_executor import TradeExecutor

from tests.helpers.fake_bus import FakeBus


@pytest.mark.asyncio
async def test_buy_then_sell_walkthrough(executor: TradeExecutor, store: InMemoryLedgerStore) -> None:
    delta = await executor.buy("AAPL", 10, Decimal("150"), name="Apple Inc.")
    assert delta.wallet.balance == Decimal("23500")
    assert delta.amount == Decimal("1500")
    holding = await store.get_holding("AAPL")
    assert holding is not None
    assert holding.quantity == 10
    assert holding.total_cost == Decimal("1500")
    assert holding.average_cost_per_share == Decimal("150")
    assert holding.name == "Apple Inc."

    delta = await executor.sell("AAPL", 4, Decimal("170"))
    assert delta.amount == Decimal("680")
    assert (await store.get_wallet()).balance == Decimal("24180")
    holding = await store.get_holding("AAPL")
    assert holding.quantity == 6
    assert holding.total_cost == Decimal("820")
    assert holding.average_cost_per_share.quantize(Decimal("0.01")) == Decimal("136.67")
    assert holding.current_price == Decimal("170")
    assert holding.market_value == Decimal("1020")
    assert holding.name == "Apple Inc."

    delta = await executor.sell("AAPL", 6, Decimal("160"))
    assert delta.removed is True
    assert delta.holding is None
    assert await store.get_holding("AAPL") is None
    assert (await store.get_wallet()).balance == Decimal("25140")


@pytest.mark.asyncio
async def test_insufficient_funds_leaves_ledger_untouched(
    executor: TradeExecutor, store: InMemoryLedgerStore
) -> None:
    await executor.buy("AAPL", 10, Decimal("150"))
    await executor.sell("AAPL", 4, Decimal("170"))
    before = await store.snapshot()

    with pytest.raises(InsufficientFunds):
        await executor.buy("AAPL", 1000, Decimal("150"))

    assert await store.snapshot() == before


@pytest.mark.asyncio
async def test_buy_exactly_the_balance_is_allowed(executor: TradeExecutor, store: InMemoryLedgerStore) -> None:
    await executor.buy("MSFT", 100, Decimal("250"))
    assert (await store.get_wallet()).balance == Decimal("0")


@pytest.mark.asyncio
async def test_repeat_buys_accumulate_cost_basis(executor: TradeExecutor, store: InMemoryLedgerStore) -> None:
    await executor.buy("TSLA", 2, Decimal("100"))
    await executor.buy("TSLA", 2, Decimal("200"))
    holding = await store.get_holding("TSLA")
    assert holding.quantity == 4
    assert holding.total_cost == Decimal("600")
    assert holding.average_cost_per_share == Decimal("150")
    # change is average minus the latest price
    assert holding.change == Decimal("-50")
    assert holding.market_value == Decimal("800")


@pytest.mark.asyncio
async def test_trades_at_fixed_price_conserve_net_worth(
    executor: TradeExecutor, store: InMemoryLedgerStore
) -> None:
    async def worth() -> Decimal:
        snapshot = await store.snapshot()
        return snapshot.wallet.balance + sum(h.market_value for h in snapshot.holdings)

    assert await worth() == Decimal("25000")
    await executor.buy("AAPL", 10, Decimal("150"))
    assert await worth() == Decimal("25000")
    await executor.buy("AAPL", 5, Decimal("150"))
    await executor.buy("MSFT", 3, Decimal("310.25"))
    assert await worth() == Decimal("25000")
    await executor.sell("AAPL", 4, Decimal("150"))
    assert await worth() == Decimal("25000")
    await executor.sell("MSFT", 3, Decimal("310.25"))
    assert await worth() == Decimal("25000")


@pytest.mark.asyncio
async def test_partial_sell_conserves_cash_plus_cost_basis(
    executor: TradeExecutor, store: InMemoryLedgerStore
) -> None:
    await executor.buy("AAPL", 10, Decimal("150"))
    await executor.buy("NVDA", 5, Decimal("400"))
    await executor.sell("AAPL", 3, Decimal("155"))
    await executor.sell("NVDA", 1, Decimal("390"))
    snapshot = await store.snapshot()
    total = snapshot.wallet.balance + sum(h.total_cost for h in snapshot.holdings)
    assert total == Decimal("25000")


@pytest.mark.asyncio
async def test_sell_without_position(executor: TradeExecutor, store: InMemoryLedgerStore) -> None:
    with pytest.raises(NoPosition) as excinfo:
        await executor.sell("GOOG", 1, Decimal("100"))
    assert excinfo.value.http_status == 404
    assert excinfo.value.message == "Stock not found in the portfolio"
    assert (await store.get_wallet()).balance == Decimal("25000")


@pytest.mark.asyncio
async def test_sell_more_than_held(executor: TradeExecutor, store: InMemoryLedgerStore) -> None:
    await executor.buy("AAPL", 5, Decimal("100"))
    with pytest.raises(InsufficientShares) as excinfo:
        await executor.sell("AAPL", 6, Decimal("100"))
    assert not isinstance(excinfo.value, NoPosition)
    assert excinfo.value.message == "Insufficient quantity to sell"
    assert (await store.get_holding("AAPL")).quantity == 5
    assert (await store.get_wallet()).balance == Decimal("24500")


@pytest.mark.asyncio
@pytest.mark.parametrize("quantity", [0, -3])
async def test_non_positive_quantity_rejected(executor: TradeExecutor, quantity: int) -> None:
    with pytest.raises(InvalidQuantity):
        await executor.buy("AAPL", quantity, Decimal("150"))


@pytest.mark.asyncio
@pytest.mark.parametrize("price", ["0", "-1.5"])
async def test_non_positive_price_rejected(executor: TradeExecutor, price: str) -> None:
    with pytest.raises(InvalidPrice):
        await executor.sell("AAPL", 1, Decimal(price))


@pytest.mark.asyncio
async def test_symbols_are_normalized(executor: TradeExecutor, store: InMemoryLedgerStore) -> None:
    await executor.buy(" aapl ", 1, Decimal("10"))
    await executor.buy("AAPL", 1, Decimal("10"))
    holdings = await store.list_holdings()
    assert [h.symbol for h in holdings] == ["AAPL"]
    assert holdings[0].quantity == 2


@pytest.mark.asyncio
async def test_duplicate_intent_is_refused(executor: TradeExecutor, store: InMemoryLedgerStore) -> None:
    await executor.buy("AAPL", 1, Decimal("100"), intent_id="order-1")
    assert await executor.intent_status("order-1") is IntentStatus.APPLIED
    assert await executor.intent_status("order-2") is IntentStatus.UNKNOWN

    with pytest.raises(DuplicateIntent):
        await executor.buy("AAPL", 1, Decimal("100"), intent_id="order-1")
    assert (await store.get_holding("AAPL")).quantity == 1
    assert (await store.get_wallet()).balance == Decimal("24900")


@pytest.mark.asyncio
async def test_rejected_intent_is_not_recorded(executor: TradeExecutor) -> None:
    with pytest.raises(InsufficientFunds):
        await executor.buy("AAPL", 1000, Decimal("100"), intent_id="too-big")
    assert await executor.intent_status("too-big") is IntentStatus.UNKNOWN
    # The same id can be retried once the trade is valid
    await executor.buy("AAPL", 10, Decimal("100"), intent_id="too-big")
    assert await executor.intent_status("too-big") is IntentStatus.APPLIED


@pytest.mark.asyncio
async def test_events_published(executor: TradeExecutor, bus: FakeBus) -> None:
    await executor.buy("AAPL", 2, Decimal("100"))
    with pytest.raises(NoPosition):
        await executor.sell("MSFT", 1, Decimal("100"))

    updates = bus.of_type("ledger_update")
    assert len(updates) == 1
    assert updates[0]["symbol"] == "AAPL"
    assert updates[0]["side"] == "buy"
    assert updates[0]["holding"]["totalCost"] == "200"
    assert updates[0]["wallet"]["balance"] == "24800"

    rejected = bus.of_type("trade_rejected")
    assert rejected == [{"symbol": "MSFT", "side": "sell", "code": "no_position", "intentId": None}]


@pytest.mark.asyncio
async def test_set_balance(executor: TradeExecutor, store: InMemoryLedgerStore, bus: FakeBus) -> None:
    wallet = await executor.set_balance(Decimal("1000"))
    assert wallet.balance == Decimal("1000")
    assert (await store.get_wallet()).balance == Decimal("1000")
    assert bus.of_type("wallet_update") == [{"balance": "1000"}]

    with pytest.raises(InvalidBalance):
        await executor.set_balance(Decimal("-1"))
    with pytest.raises(InvalidBalance):
        await executor.set_balance(Decimal("1e10"))
    assert (await store.get_wallet()).balance == Decimal("1000")


@pytest.mark.asyncio
async def test_apply_accepts_trade_intent(executor: TradeExecutor) -> None:
    intent = TradeIntent(symbol="amd", side=Side.BUY, quantity=3, price=Decimal("90.5"))
    delta = await executor.apply(intent)
    assert delta.symbol == "AMD"
    assert delta.holding.total_cost == Decimal("271.5")


class FailingQuotes:
    async def get_price(self, symbol: str):
        raise QuoteSourceError("provider down")


@pytest.mark.asyncio
async def test_price_band_guard(store: InMemoryLedgerStore) -> None:
    quotes = PriceCache()
    await quotes.update_price("AAPL", Decimal("100"))
    executor = TradeExecutor(store, quote_source=quotes, price_band_pct=5)

    await executor.buy("AAPL", 1, Decimal("104"))
    with pytest.raises(PriceOutOfBand):
        await executor.buy("AAPL", 1, Decimal("106"))
    with pytest.raises(PriceOutOfBand):
        await executor.sell("AAPL", 1, Decimal("94"))
    # No quote for the symbol: the guard is skipped
    await executor.buy("MSFT", 1, Decimal("300"))
    assert (await store.get_holding("AAPL")).quantity == 1


@pytest.mark.asyncio
async def test_price_band_skipped_when_quotes_fail(store: InMemoryLedgerStore) -> None:
    executor = TradeExecutor(store, quote_source=FailingQuotes(), price_band_pct=1)
    delta = await executor.buy("AAPL", 1, Decimal("100"))
    assert delta.wallet.balance == Decimal("24900")
