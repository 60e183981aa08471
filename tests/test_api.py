"""Tests for the aiohttp API.

The application is served in-process with ``aiohttp.test_utils`` and
exercised with the same JSON bodies the mobile client sends.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from aiohttp import test_utils

from papertrade.api import create_app
from papertrade.services.ledger_query import LedgerQuery
from papertrade.services.ledger_store import InMemoryLedgerStore
from papertrade.services.trade_executor import TradeExecutor


@pytest.fixture
async def client(store: InMemoryLedgerStore, executor: TradeExecutor):
    app = create_app(executor, LedgerQuery(store))
    async with test_utils.TestClient(test_utils.TestServer(app)) as client:
        yield client


def _body(symbol: str, quantity, price, **extra):
    body = {
        "symbol": symbol,
        "name": f"{symbol} Corp",
        "quantity": quantity,
        "totalCost": quantity * price if isinstance(quantity, int) else 0,
        "currentPrice": price,
    }
    body.update(extra)
    return body


@pytest.mark.asyncio
async def test_buy_sell_and_read(client: test_utils.TestClient) -> None:
    resp = await client.post("/portfolio", json=_body("AAPL", 10, 150))
    assert resp.status == 200
    data = await resp.json()
    assert data["message"] == "Portfolio updated successfully"
    assert data["delta"]["wallet"]["balance"] == 23500

    resp = await client.post("/portfolio/sell", json=_body("AAPL", 4, 170))
    assert resp.status == 200
    assert (await resp.json())["message"] == "Stock sold successfully"

    resp = await client.get("/portfolioData")
    holdings = await resp.json()
    assert len(holdings) == 1
    assert holdings[0]["symbol"] == "AAPL"
    assert holdings[0]["name"] == "AAPL Corp"
    assert holdings[0]["quantity"] == 6
    assert holdings[0]["totalCost"] == 820
    assert holdings[0]["averageCostPerShare"] == pytest.approx(136.6667, abs=1e-3)

    resp = await client.get("/wallet")
    assert await resp.json() == {"balance": 24180}

    resp = await client.get("/portfolio/aapl")
    assert resp.status == 200
    assert (await resp.json())["marketValue"] == 1020

    resp = await client.get("/networth")
    assert await resp.json() == {"balance": 24180, "totalMarketValue": 1020, "netWorth": 25200}


@pytest.mark.asyncio
async def test_decimal_prices_are_not_rounded(client: test_utils.TestClient) -> None:
    resp = await client.post(
        "/portfolio",
        data='{"symbol": "X", "quantity": 3, "currentPrice": 0.1, "totalCost": 0.3}',
        headers={"Content-Type": "application/json"},
    )
    assert resp.status == 200
    resp = await client.get("/wallet")
    assert (await resp.json())["balance"] == 24999.7


@pytest.mark.asyncio
async def test_sell_errors(client: test_utils.TestClient) -> None:
    resp = await client.post("/portfolio/sell", json=_body("GOOG", 1, 100))
    assert resp.status == 404
    assert (await resp.json())["error"] == "Stock not found in the portfolio"

    await client.post("/portfolio", json=_body("GOOG", 1, 100))
    resp = await client.post("/portfolio/sell", json=_body("GOOG", 2, 100))
    assert resp.status == 400
    data = await resp.json()
    assert data["error"] == "Insufficient quantity to sell"
    assert data["code"] == "insufficient_shares"


@pytest.mark.asyncio
async def test_buy_errors(client: test_utils.TestClient) -> None:
    resp = await client.post("/portfolio", json=_body("AAPL", 1000, 150))
    assert resp.status == 400
    assert (await resp.json())["code"] == "insufficient_funds"

    resp = await client.post("/portfolio", json=_body("AAPL", 0, 150))
    assert resp.status == 400
    assert (await resp.json())["code"] == "invalid_quantity"

    resp = await client.post("/portfolio", json=_body("AAPL", 2, 150, totalCost=1))
    assert resp.status == 400

    resp = await client.post("/portfolio", json={"symbol": "AAPL"})
    assert resp.status == 400

    resp = await client.post(
        "/portfolio", data="not json", headers={"Content-Type": "application/json"}
    )
    assert resp.status == 400

    resp = await client.get("/portfolio/AAPL")
    assert resp.status == 404


@pytest.mark.asyncio
async def test_idempotency_key(client: test_utils.TestClient) -> None:
    headers = {"Idempotency-Key": "order-7"}
    resp = await client.post("/portfolio", json=_body("AAPL", 1, 100), headers=headers)
    assert resp.status == 200
    resp = await client.post("/portfolio", json=_body("AAPL", 1, 100), headers=headers)
    assert resp.status == 409
    assert (await resp.json())["code"] == "duplicate_intent"

    resp = await client.get("/intents/order-7")
    assert await resp.json() == {"intentId": "order-7", "status": "applied"}
    resp = await client.get("/intents/other")
    assert (await resp.json())["status"] == "unknown"


@pytest.mark.asyncio
async def test_wallet_update(client: test_utils.TestClient, store: InMemoryLedgerStore) -> None:
    resp = await client.post("/wallet/update", json={"newBalance": 500.25})
    assert resp.status == 200
    assert await resp.json() == {"success": True}
    assert (await store.get_wallet()).balance == Decimal("500.25")

    for bad in ({"newBalance": "lots"}, {"newBalance": True}, {}):
        resp = await client.post("/wallet/update", json=bad)
        assert resp.status == 400
    resp = await client.post("/wallet/update", json={"newBalance": -1})
    assert resp.status == 400
    assert (await resp.json())["code"] == "invalid_balance"
    resp = await client.post("/wallet/update", json={"newBalance": 10000000000})
    assert (await resp.json())["code"] == "invalid_balance"
    assert (await store.get_wallet()).balance == Decimal("500.25")


@pytest.mark.asyncio
async def test_health(client: test_utils.TestClient) -> None:
    resp = await client.get("/health")
    assert await resp.json() == {"status": "ok"}
