"""Pytest configuration for path setup.

The ledger package lives under ``server/src``.  When pytest is executed
without the package installed, neither the repository root nor
``server/src`` is on ``sys.path``.  This file puts both there so that
``papertrade`` and the ``tests.helpers`` modules import regardless of
how pytest is invoked, and provides the store fixtures shared by the
suite.
"""

from __future__ import annotations

import sys
from decimal import Decimal
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]

for path in (ROOT, ROOT / "server" / "src"):
    path_str = str(path)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)

from papertrade.services.ledger_store import InMemoryLedgerStore  # noqa: E402
from papertrade.services.trade_executor import TradeExecutor  # noqa: E402

from tests.helpers.fake_bus import FakeBus  # noqa: E402


@pytest.fixture
async def store() -> InMemoryLedgerStore:
    store = InMemoryLedgerStore()
    await store.initialize(Decimal("25000"))
    return store


@pytest.fixture
def bus() -> FakeBus:
    return FakeBus()


@pytest.fixture
def executor(store: InMemoryLedgerStore, bus: FakeBus) -> TradeExecutor:
    return TradeExecutor(store, store_timeout=1.0, event_bus=bus)
