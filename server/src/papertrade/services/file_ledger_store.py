"""
Simple file-based ledger store.  The wallet, the holdings and the set
of applied intent ids are kept as one JSON document at the path given
at construction time.  Decimal amounts are written as strings so that
no precision is lost between restarts.

Every commit writes the complete staged document to a temporary file
of its own next to the target (off the event loop) and then
``os.replace``s it into place.  The replace is the commit point: it is
atomic on POSIX and Windows, and the in-memory view is swapped immediately after it
with no await in between.  A failure or cancellation before the
replace leaves the previous document, and the previous in-memory
state, untouched.  A cancelled commit holds the store lock until its
write thread has finished and its temp file is removed, so a write
abandoned by a timeout can never land after a later commit.

It is not optimized for high throughput but provides a durable ledger
without a database.  For multi-process deployments use
:class:`~papertrade.services.db_ledger_store.DatabaseLedgerStore`.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from decimal import Decimal
from typing import Any, Dict, Optional, Set

from pydantic import ValidationError

from ..errors import StoreCorruption, StoreUnavailable
from ..models import Holding, Wallet
from .ledger_store import DEFAULT_SEED_BALANCE, InMemoryLedgerStore

logger = logging.getLogger(__name__)


class FileLedgerStore(InMemoryLedgerStore):
    def __init__(self, path: str = "ledger_store.json") -> None:
        super().__init__()
        self.path = os.path.abspath(path)

    async def initialize(self, seed_balance: Decimal = DEFAULT_SEED_BALANCE) -> None:
        async with self._lock:
            if os.path.exists(self.path):
                data = await asyncio.to_thread(self._read_file)
                self._load(data)
                logger.info("Loaded ledger from %s (%d holdings)", self.path, len(self._holdings))
            if self._wallet is None:
                wallet = Wallet(balance=Decimal(seed_balance))
                await self._persist(wallet, self._holdings, self._intents)
                self._wallet = wallet
                logger.info("Wallet balance initialized to %s", seed_balance)

    async def _persist(
        self, wallet: Optional[Wallet], holdings: Dict[str, Holding], intents: Set[str]
    ) -> None:
        document = {
            "wallet": wallet.model_dump(mode="json", by_alias=True) if wallet else None,
            "holdings": [h.model_dump(mode="json", by_alias=True) for h in holdings.values()],
            "intents": sorted(intents),
        }
        directory = os.path.dirname(self.path)
        try:
            os.makedirs(directory, exist_ok=True)
            # One temp file per commit: an abandoned write never touches another commit's file.
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{os.path.basename(self.path)}.", suffix=".tmp", dir=directory
            )
        except OSError as exc:
            raise StoreUnavailable(f"Could not create ledger temp file: {exc}") from exc
        replaced = False
        try:
            write = asyncio.ensure_future(asyncio.to_thread(self._write_file, fd, document))
            try:
                await asyncio.shield(write)
            except asyncio.CancelledError:
                # The thread cannot be interrupted; keep the store lock until it is done.
                await asyncio.wait([write])
                if not write.cancelled() and write.exception() is not None:
                    logger.warning("Abandoned ledger write failed: %s", write.exception())
                raise
            os.replace(tmp_path, self.path)
            replaced = True
        except OSError as exc:
            raise StoreUnavailable(f"Could not write ledger file: {exc}") from exc
        finally:
            if not replaced:
                self._discard(tmp_path)

    def _discard(self, tmp_path: str) -> None:
        try:
            os.remove(tmp_path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Could not remove ledger temp file %s: %s", tmp_path, exc)

    def _read_file(self) -> Dict[str, Any]:
        with open(self.path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _write_file(self, fd: int, data: Dict[str, Any]) -> None:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.flush()
            os.fsync(f.fileno())

    def _load(self, data: Dict[str, Any]) -> None:
        try:
            wallet_data = data.get("wallet")
            self._wallet = Wallet.model_validate(wallet_data) if wallet_data else None
            holdings = [Holding.model_validate(item) for item in data.get("holdings", [])]
        except ValidationError as exc:
            raise StoreCorruption(f"Ledger file {self.path} failed validation: {exc}") from exc
        self._holdings = {h.symbol: h for h in holdings}
        self._intents = set(data.get("intents", []))
