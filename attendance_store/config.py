"""
Configuration management for the attendance store.

All configuration is done via environment variables. This module provides
typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - The sheets backend MUST be given a spreadsheet id and credentials
    - Secrets (service account material) are never logged

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep cache TTLs long enough to stay under the remote per-minute quota
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)


class RemoteBackend(Enum):
    """Supported remote store backends."""

    SHEETS = "sheets"
    MEMORY = "memory"


@dataclass(frozen=True)
class SheetsConfig:
    """Google Sheets backend configuration.

    Attributes:
        spreadsheet_id: Key of the spreadsheet holding all tables
        credentials_file: Path to a service account JSON file
        credentials_json: Raw service account JSON (alternative to the file)
        roster_table: Name of the employee directory worksheet
        timezone: Timezone used to name daily tables
    """

    spreadsheet_id: str = ""
    credentials_file: str | None = None
    credentials_json: str | None = None
    roster_table: str = "Worker info"
    timezone: str = "Asia/Tashkent"

    @classmethod
    def from_env(cls) -> SheetsConfig:
        """Load configuration from environment variables."""
        return cls(
            spreadsheet_id=os.getenv("GOOGLE_SHEETS_ID", ""),
            credentials_file=os.getenv("GOOGLE_SERVICE_ACCOUNT_FILE"),
            credentials_json=os.getenv("GOOGLE_SERVICE_ACCOUNT_JSON"),
            roster_table=os.getenv("ROSTER_SHEET", "Worker info"),
            timezone=os.getenv("TIMEZONE", "Asia/Tashkent"),
        )


@dataclass(frozen=True)
class CacheConfig:
    """Cache and coordination configuration.

    Attributes:
        table_ttl_seconds: How long cached table rows are trusted
        init_ttl_seconds: How long a "table is initialized" verdict is trusted
        invalidation_delay_seconds: Settle delay before a write invalidates its table
        dedup_window_seconds: Window in which a repeated event is acknowledged as applied
        dedup_capacity: Maximum remembered event keys
    """

    table_ttl_seconds: float = 1800.0  # 30 minutes
    init_ttl_seconds: float = 3600.0
    invalidation_delay_seconds: float = 5.0
    dedup_window_seconds: float = 5.0
    dedup_capacity: int = 100

    @classmethod
    def from_env(cls) -> CacheConfig:
        """Load configuration from environment variables."""
        return cls(
            table_ttl_seconds=float(os.getenv("CACHE_TTL_SECONDS", "1800")),
            init_ttl_seconds=float(os.getenv("INIT_TTL_SECONDS", "3600")),
            invalidation_delay_seconds=float(os.getenv("INVALIDATION_DELAY_SECONDS", "5.0")),
            dedup_window_seconds=float(os.getenv("DEDUP_WINDOW_SECONDS", "5.0")),
            dedup_capacity=int(os.getenv("DEDUP_CAPACITY", "100")),
        )


@dataclass(frozen=True)
class RetryConfig:
    """Quota retry configuration.

    Attributes:
        max_retries: Retries after the first attempt (quota errors only)
        initial_delay_seconds: First backoff delay, doubled on each retry
    """

    max_retries: int = 3
    initial_delay_seconds: float = 1.0

    @classmethod
    def from_env(cls) -> RetryConfig:
        """Load configuration from environment variables."""
        return cls(
            max_retries=int(os.getenv("RETRY_MAX_RETRIES", "3")),
            initial_delay_seconds=float(os.getenv("RETRY_INITIAL_DELAY_SECONDS", "1.0")),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class StoreConfig:
    """Complete attendance store configuration.

    Attributes:
        remote_backend: Which remote store backend to use
        sheets: Google Sheets configuration
        cache: Cache and coordination configuration
        retry: Quota retry configuration
        observability: Logging configuration
    """

    remote_backend: RemoteBackend = RemoteBackend.SHEETS
    sheets: SheetsConfig = field(default_factory=SheetsConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> StoreConfig:
        """Load complete configuration from environment variables.

        Returns:
            StoreConfig with all sections populated from environment.

        Raises:
            ValueError: If required configuration is missing or invalid.
        """
        backend_str = os.getenv("REMOTE_BACKEND", "sheets").lower()
        try:
            remote_backend = RemoteBackend(backend_str)
        except ValueError:
            raise ValueError(
                f"Invalid REMOTE_BACKEND '{backend_str}'. Must be one of: sheets, memory"
            )

        config = cls(
            remote_backend=remote_backend,
            sheets=SheetsConfig.from_env(),
            cache=CacheConfig.from_env(),
            retry=RetryConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.remote_backend == RemoteBackend.SHEETS:
            if not self.sheets.spreadsheet_id:
                raise ValueError("GOOGLE_SHEETS_ID is required when REMOTE_BACKEND=sheets")
            if not (self.sheets.credentials_file or self.sheets.credentials_json):
                raise ValueError(
                    "GOOGLE_SERVICE_ACCOUNT_FILE or GOOGLE_SERVICE_ACCOUNT_JSON is required "
                    "when REMOTE_BACKEND=sheets"
                )

        if self.cache.table_ttl_seconds <= 0:
            raise ValueError("CACHE_TTL_SECONDS must be positive")
        if self.cache.init_ttl_seconds <= 0:
            raise ValueError("INIT_TTL_SECONDS must be positive")
        if self.cache.invalidation_delay_seconds < 0:
            raise ValueError("INVALIDATION_DELAY_SECONDS must not be negative")
        if self.cache.dedup_capacity < 1:
            raise ValueError("DEDUP_CAPACITY must be at least 1")
        if self.retry.max_retries < 0:
            raise ValueError("RETRY_MAX_RETRIES must not be negative")

        if self.cache.table_ttl_seconds < 60:
            logger.warning(
                f"CACHE_TTL_SECONDS={self.cache.table_ttl_seconds} is very short; "
                "expect heavy quota usage on the remote store."
            )

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Store configuration loaded",
            extra={
                "remote_backend": self.remote_backend.value,
                "spreadsheet_id": self.sheets.spreadsheet_id
                if self.remote_backend == RemoteBackend.SHEETS
                else None,
                "credentials": "file"
                if self.sheets.credentials_file
                else ("json" if self.sheets.credentials_json else None),
                "roster_table": self.sheets.roster_table,
                "timezone": self.sheets.timezone,
                "table_ttl_seconds": self.cache.table_ttl_seconds,
                "init_ttl_seconds": self.cache.init_ttl_seconds,
                "invalidation_delay_seconds": self.cache.invalidation_delay_seconds,
                "retry_max_retries": self.retry.max_retries,
                "log_level": self.observability.log_level,
            },
        )
