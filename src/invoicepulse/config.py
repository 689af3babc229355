"""
InvoicePulse configuration management.

Supports loading from YAML files, environment variables, and keyword overrides.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from invoicepulse.models.stats import VendorRankMode


class AnalyticsConfig(BaseModel):
    """Snapshot, trend and comparison policy."""

    trend_window: int = Field(default=5, ge=1, description="Number of most recent batches in a trend")
    top_vendors_limit: int = Field(default=10, ge=1, description="Vendors kept in a snapshot")
    vendor_rank_mode: VendorRankMode = Field(default=VendorRankMode.VALUE)
    ready_state_prefix: str = Field(default="08", description="Process-state prefix meaning ready for payment")


class OutlierConfig(BaseModel):
    """Import-time outlier flagging and analysis inclusion."""

    high_value_threshold: float = Field(default=100_000.0, ge=0.0)
    high_value_state: str = Field(default="01 - Header To Be Verified")
    include_high_value: bool = Field(default=False, description="Count high-value outliers in analysis")
    include_negative: bool = Field(default=False, description="Count negative-amount outliers in analysis")


class StorageConfig(BaseModel):
    """Where batches, invoices and snapshots live."""

    type: str = Field(default="sql", description="memory, sql, or a dotted connector class path")
    connection_string: str = Field(default="sqlite:///invoicepulse.db")
    options: dict[str, Any] = Field(default_factory=dict)


class InvoicePulseConfig(BaseModel):
    """Root configuration for InvoicePulse."""

    analytics: AnalyticsConfig = Field(default_factory=AnalyticsConfig)
    outliers: OutlierConfig = Field(default_factory=OutlierConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)

    log_level: str = Field(default="WARNING")

    @classmethod
    def load(cls, config_path: str | None = None, **overrides: Any) -> InvoicePulseConfig:
        """Load configuration from file, env vars, and overrides.

        Priority: overrides > env vars > config file > defaults.
        """
        data: dict[str, Any] = {}

        # 1. Load from YAML file if provided
        if config_path:
            path = Path(config_path)
            if path.exists():
                with open(path) as f:
                    data = yaml.safe_load(f) or {}

        # 2. Override from environment variables
        env_db = os.environ.get("INVOICEPULSE_DB_URL")
        env_window = os.environ.get("INVOICEPULSE_TREND_WINDOW")
        env_level = os.environ.get("INVOICEPULSE_LOG_LEVEL")

        if env_db:
            storage = data.get("storage", {})
            storage["type"] = "sql"
            storage["connection_string"] = env_db
            data["storage"] = storage

        if env_window:
            analytics = data.get("analytics", {})
            analytics["trend_window"] = int(env_window)
            data["analytics"] = analytics

        if env_level:
            data["log_level"] = env_level

        # 3. Apply keyword overrides
        data.update(overrides)

        return cls.model_validate(data)
