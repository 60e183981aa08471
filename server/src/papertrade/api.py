"""
HTTP surface consumed by the mobile client.

The routes and JSON shapes are the ones the client already speaks:

* ``POST /portfolio`` – buy ``{symbol, name, quantity, totalCost, currentPrice}``
* ``POST /portfolio/sell`` – sell, same body
* ``GET /portfolioData`` – holdings in insertion order
* ``GET /wallet`` – ``{balance}``
* ``POST /wallet/update`` – ``{newBalance}`` overwrite

plus read helpers (``/portfolio/{symbol}``, ``/networth``,
``/intents/{intentId}``, ``/health``).  Buy and sell settle the wallet
server-side in the same commit as the holding; the client no longer
needs a second ``/wallet/update`` call.

Request bodies are parsed with ``parse_float=Decimal`` so that client
prices reach the ledger without binary float rounding.  Decimals are
written back as JSON numbers.
"""

from __future__ import annotations

import functools
import json
import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from aiohttp import web
from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from .errors import TradeError
from .models import LedgerDelta, Side, TradeIntent
from .services.ledger_query import LedgerQuery
from .services.trade_executor import TradeExecutor

logger = logging.getLogger(__name__)

EXECUTOR_KEY = web.AppKey("executor", TradeExecutor)
QUERY_KEY = web.AppKey("query", LedgerQuery)

# Client-computed totalCost may differ from quantity * price by float rounding.
TOTAL_COST_TOLERANCE = Decimal("0.01")


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


json_dumps = functools.partial(json.dumps, default=_json_default)
json_loads = functools.partial(json.loads, parse_float=Decimal)


def json_response(data: Any, status: int = 200) -> web.Response:
    return web.json_response(data, status=status, dumps=json_dumps)


def bad_request(message: str) -> web.HTTPBadRequest:
    return web.HTTPBadRequest(
        text=json.dumps({"error": message}), content_type="application/json"
    )


class TradeRequest(BaseModel):
    """Body of ``POST /portfolio`` and ``POST /portfolio/sell``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    symbol: str
    name: Optional[str] = None
    quantity: int
    total_cost: Optional[Decimal] = None
    current_price: Decimal
    intent_id: Optional[str] = None

    def to_intent(self, side: Side, intent_id: Optional[str] = None) -> TradeIntent:
        return TradeIntent(
            symbol=self.symbol,
            side=side,
            quantity=self.quantity,
            price=self.current_price,
            name=self.name,
            intent_id=self.intent_id or intent_id,
        )


async def read_json(request: web.Request) -> Dict[str, Any]:
    try:
        body = await request.json(loads=json_loads)
    except json.JSONDecodeError:
        raise bad_request("Request body must be valid JSON") from None
    if not isinstance(body, dict):
        raise bad_request("Request body must be a JSON object")
    return body


@web.middleware
async def error_middleware(request: web.Request, handler: Any) -> web.StreamResponse:
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except TradeError as exc:
        return json_response(exc.to_dict(), status=exc.http_status)
    except ValidationError as exc:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
        return json_response({"error": f"Invalid request: {fields}"}, status=400)
    except Exception:
        logger.exception("Unhandled error for %s %s", request.method, request.path)
        return json_response({"error": "Internal server error"}, status=500)


async def _trade(request: web.Request, side: Side) -> LedgerDelta:
    body = await read_json(request)
    trade = TradeRequest.model_validate(body)
    if trade.total_cost is not None and trade.quantity > 0 and trade.current_price > 0:
        expected = trade.current_price * trade.quantity
        if abs(expected - trade.total_cost) > TOTAL_COST_TOLERANCE:
            raise bad_request("totalCost does not match quantity x currentPrice")
    intent = trade.to_intent(side, intent_id=request.headers.get("Idempotency-Key"))
    delta = await request.app[EXECUTOR_KEY].apply(intent)
    return delta


async def buy(request: web.Request) -> web.Response:
    delta = await _trade(request, Side.BUY)
    return json_response(
        {"message": "Portfolio updated successfully", "delta": delta.model_dump(by_alias=True)}
    )


async def sell(request: web.Request) -> web.Response:
    delta = await _trade(request, Side.SELL)
    return json_response(
        {"message": "Stock sold successfully", "delta": delta.model_dump(by_alias=True)}
    )


async def portfolio_data(request: web.Request) -> web.Response:
    holdings = await request.app[QUERY_KEY].holdings()
    return json_response([h.model_dump(by_alias=True) for h in holdings])


async def portfolio_holding(request: web.Request) -> web.Response:
    holding = await request.app[QUERY_KEY].holding(request.match_info["symbol"])
    if holding is None:
        return json_response({"error": "Stock not found in the portfolio"}, status=404)
    return json_response(holding.model_dump(by_alias=True))


async def wallet(request: web.Request) -> web.Response:
    current = await request.app[QUERY_KEY].wallet()
    return json_response({"balance": current.balance})


async def wallet_update(request: web.Request) -> web.Response:
    body = await read_json(request)
    new_balance = body.get("newBalance")
    if not isinstance(new_balance, (int, Decimal)) or isinstance(new_balance, bool):
        raise bad_request("newBalance must be a number")
    await request.app[EXECUTOR_KEY].set_balance(Decimal(new_balance))
    return json_response({"success": True})


async def net_worth(request: web.Request) -> web.Response:
    return json_response(await request.app[QUERY_KEY].summary())


async def intent_status(request: web.Request) -> web.Response:
    intent_id = request.match_info["intent_id"]
    status = await request.app[EXECUTOR_KEY].intent_status(intent_id)
    return json_response({"intentId": intent_id, "status": status.value})


async def health(request: web.Request) -> web.Response:
    return json_response({"status": "ok"})


def create_app(executor: TradeExecutor, query: LedgerQuery) -> web.Application:
    app = web.Application(middlewares=[error_middleware])
    app[EXECUTOR_KEY] = executor
    app[QUERY_KEY] = query
    app.router.add_post("/portfolio", buy)
    app.router.add_post("/portfolio/sell", sell)
    app.router.add_get("/portfolioData", portfolio_data)
    app.router.add_get("/portfolio/{symbol}", portfolio_holding)
    app.router.add_get("/wallet", wallet)
    app.router.add_post("/wallet/update", wallet_update)
    app.router.add_get("/networth", net_worth)
    app.router.add_get("/intents/{intent_id}", intent_status)
    app.router.add_get("/health", health)
    return app
