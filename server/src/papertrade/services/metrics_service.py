"""
Metrics Service
===============

This module provides a service that subscribes to the internal event bus
for ledger updates and publishes them as Prometheus metrics.  It does not
query the store; every value comes from the ``ledger_update``,
``wallet_update`` and ``trade_rejected`` events emitted by the trade
executor.

Configuration
-------------

* ``PROMETHEUS_PORT`` – port on which to expose the metrics HTTP endpoint.
  ``0`` disables the endpoint (the gauges are still maintained).

Metrics
-------

* ``papertrade_wallet_balance`` – current cash balance.
* ``papertrade_holding_quantity{symbol=...}`` – shares held per symbol.
* ``papertrade_holding_market_value{symbol=...}`` – market value per symbol
  at the last trade price.
* ``papertrade_trades_total{side=...}`` – applied trades.
* ``papertrade_trade_rejections_total{code=...}`` – rejected trades by error code.

Usage
-----

Instantiate ``MetricsService`` with the event bus and call its
``run()`` method inside an asyncio task.  Tests pass their own
``CollectorRegistry``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, start_http_server

logger = logging.getLogger(__name__)


class MetricsService:
    """Subscribe to event bus updates and expose metrics for Prometheus."""

    def __init__(
        self,
        event_bus: Any,
        registry: CollectorRegistry = REGISTRY,
        port: Optional[int] = None,
    ) -> None:
        self.event_bus = event_bus
        self.balance_gauge = Gauge(
            "papertrade_wallet_balance",
            "Current virtual cash balance",
            registry=registry,
        )
        self.quantity_gauge = Gauge(
            "papertrade_holding_quantity",
            "Shares held per symbol",
            labelnames=["symbol"],
            registry=registry,
        )
        self.market_value_gauge = Gauge(
            "papertrade_holding_market_value",
            "Market value per symbol at the last trade price",
            labelnames=["symbol"],
            registry=registry,
        )
        self.trades_counter = Counter(
            "papertrade_trades",
            "Applied trades",
            labelnames=["side"],
            registry=registry,
        )
        self.rejections_counter = Counter(
            "papertrade_trade_rejections",
            "Rejected trades by error code",
            labelnames=["code"],
            registry=registry,
        )
        if port:
            try:
                start_http_server(port, registry=registry)
            except OSError as exc:
                # Likely already started in this process
                logger.debug("Prometheus server likely already running: %s", exc)

    def record_delta(self, message: Dict[str, Any]) -> None:
        wallet = message.get("wallet") or {}
        if "balance" in wallet:
            self.balance_gauge.set(float(wallet["balance"]))
        symbol = message.get("symbol")
        if symbol:
            holding = message.get("holding")
            if message.get("removed") or not holding:
                self.quantity_gauge.labels(symbol=symbol).set(0)
                self.market_value_gauge.labels(symbol=symbol).set(0)
            else:
                self.quantity_gauge.labels(symbol=symbol).set(float(holding["quantity"]))
                self.market_value_gauge.labels(symbol=symbol).set(float(holding["marketValue"]))
        side = message.get("side")
        if side:
            self.trades_counter.labels(side=side).inc()

    async def _handle_ledger_updates(self) -> None:
        async for message in self.event_bus.subscribe("ledger_update"):
            if isinstance(message, dict):
                self.record_delta(message)

    async def _handle_wallet_updates(self) -> None:
        async for message in self.event_bus.subscribe("wallet_update"):
            if isinstance(message, dict) and "balance" in message:
                self.balance_gauge.set(float(message["balance"]))

    async def _handle_rejections(self) -> None:
        async for message in self.event_bus.subscribe("trade_rejected"):
            if isinstance(message, dict):
                self.rejections_counter.labels(code=message.get("code", "unknown")).inc()

    async def run(self) -> None:
        """Run all subscribers concurrently and never return."""
        if self.event_bus is None:
            logger.error("MetricsService requires an event bus")
            return
        await asyncio.gather(
            self._handle_ledger_updates(),
            self._handle_wallet_updates(),
            self._handle_rejections(),
        )
