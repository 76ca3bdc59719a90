"""
Remote tabular store abstraction.

This module provides a pluggable remote store interface supporting:
- Google Sheets through gspread (production)
- In-memory (for testing)

The remote store is the system of record. Everything this package keeps in
memory is a derived cache that can be dropped and rebuilt at any time.

Invariants:
    - Every remote call is a suspension point
    - Quota failures are recognizable through is_quota_error()
    - Rows are persisted one at a time

How to change safely:
    - New backends must implement the RemoteStore protocol
    - Verify quota error mapping against the real API before relying on it
"""

from .base import (
    QuotaExceededError,
    RemoteConnectionError,
    RemoteStore,
    RemoteStoreError,
    Row,
    TableNotFoundError,
    create_remote_store,
    is_quota_error,
)
from .memory import InMemoryRemoteStore
from .sheets import GoogleSheetsRemoteStore

__all__ = [
    # Protocol and types
    "RemoteStore",
    "Row",
    "RemoteStoreError",
    "RemoteConnectionError",
    "QuotaExceededError",
    "TableNotFoundError",
    "is_quota_error",
    # Factory
    "create_remote_store",
    # Implementations
    "InMemoryRemoteStore",
    "GoogleSheetsRemoteStore",
]
