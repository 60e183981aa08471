"""
Runtime configuration for the ledger service.

Settings are read from environment variables (see
``LedgerSettings.from_env``) and validated with Pydantic so that a
typo in a numeric variable fails at start-up rather than on the first
trade.  Secrets are resolved through
:mod:`papertrade.secrets_manager`.
"""

from __future__ import annotations

import os
from decimal import Decimal
from typing import Mapping, Optional

from pydantic import BaseModel, Field

from .secrets_manager import BaseSecretsManager, get_default_secrets_manager
from .services.ledger_store import DEFAULT_SEED_BALANCE


class LedgerSettings(BaseModel):
    state_store_uri: Optional[str] = Field(None, description="SQLAlchemy async URL")
    ledger_store_path: Optional[str] = Field(None, description="JSON ledger file")
    seed_balance: Decimal = Field(DEFAULT_SEED_BALANCE, ge=0)
    store_timeout_seconds: float = Field(5.0, gt=0)
    price_band_pct: float = Field(0.0, ge=0)
    finnhub_api_key: Optional[str] = None
    finnhub_base_url: str = "https://finnhub.io/api/v1"
    http_host: str = "0.0.0.0"
    http_port: int = 8080
    prometheus_port: int = 9108
    log_level: str = "INFO"

    @property
    def store_backend(self) -> str:
        if self.state_store_uri:
            return "database"
        if self.ledger_store_path:
            return "file"
        return "memory"

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        secrets: Optional[BaseSecretsManager] = None,
    ) -> "LedgerSettings":
        """Build settings from ``environ`` (defaults to ``os.environ``)."""
        env = os.environ if environ is None else environ
        secrets = secrets or get_default_secrets_manager()
        values = {
            "state_store_uri": env.get("STATE_STORE_URI") or None,
            "ledger_store_path": env.get("LEDGER_STORE_PATH") or None,
            "seed_balance": env.get("SEED_BALANCE", str(DEFAULT_SEED_BALANCE)),
            "store_timeout_seconds": env.get("STORE_TIMEOUT_SECONDS", "5"),
            "price_band_pct": env.get("PRICE_BAND_PCT", "0"),
            "finnhub_api_key": secrets.get_secret("FINNHUB_API_KEY") or None,
            "finnhub_base_url": env.get("FINNHUB_BASE_URL", "https://finnhub.io/api/v1"),
            "http_host": env.get("HTTP_HOST", "0.0.0.0"),
            "http_port": env.get("HTTP_PORT", "8080"),
            "prometheus_port": env.get("PROMETHEUS_PORT", "9108"),
            "log_level": env.get("LOG_LEVEL", "INFO").upper(),
        }
        return cls(**values)
