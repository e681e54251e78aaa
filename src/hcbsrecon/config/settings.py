"""Application settings and configuration."""

from __future__ import annotations

import os
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseModel):
    """SQLite storage configuration."""

    path: str = "hcbs.db"


class MatchingSettings(BaseModel):
    """Payment-to-claim matching policy."""

    match_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    exact_match_score: float = 0.9
    similar_match_score: float = 0.7
    amount_tolerance: Decimal = Decimal("0.10")
    date_window_days: int = 90
    max_candidates: int = 100


class ReconciliationSettings(BaseModel):
    """Reconciliation policy constants."""

    paid_ratio: Decimal = Decimal("0.99")
    auto_match_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    balance_epsilon: Decimal = Decimal("0.01")


class ReceivablesSettings(BaseModel):
    """Accounts receivable reporting configuration."""

    high_priority_age_days: int = 90
    high_priority_amount: Decimal = Decimal("5000")
    medium_priority_age_days: int = 60
    medium_priority_amount: Decimal = Decimal("1000")
    query_limit: int = 100
    worklist_min_age_days: int = 30


class Settings(BaseSettings):
    """Application configuration.

    Settings are loaded from environment variables or .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    # Database Configuration
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)

    # Matching Configuration
    matching: MatchingSettings = Field(default_factory=MatchingSettings)

    # Reconciliation Configuration
    reconciliation: ReconciliationSettings = Field(default_factory=ReconciliationSettings)

    # Receivables Configuration
    receivables: ReceivablesSettings = Field(default_factory=ReceivablesSettings)

    # Logging
    log_level: str = "INFO"

    def __init__(self, **data: Any) -> None:
        """Initialize settings with environment variable overrides."""
        super().__init__(**data)
        self._load_env_overrides()

    def _load_env_overrides(self) -> None:
        """Load environment variable overrides for nested settings."""
        # Database overrides
        if path := os.getenv("HCBS_DB_PATH"):
            self.database.path = path

        # Matching overrides
        if threshold := os.getenv("MATCH_THRESHOLD"):
            self.matching.match_threshold = float(threshold)
        if window := os.getenv("MATCH_WINDOW_DAYS"):
            self.matching.date_window_days = int(window)
        if candidates := os.getenv("MATCH_MAX_CANDIDATES"):
            self.matching.max_candidates = int(candidates)

        # Reconciliation overrides
        if threshold := os.getenv("AUTO_MATCH_THRESHOLD"):
            self.reconciliation.auto_match_threshold = float(threshold)

        # Receivables overrides
        if limit := os.getenv("AR_QUERY_LIMIT"):
            self.receivables.query_limit = int(limit)
