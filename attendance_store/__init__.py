"""
Attendance Store - consistency and caching layer over a rate-limited spreadsheet.

The attendance application keeps its system of record in a spreadsheet:
one roster worksheet of employees and one worksheet per calendar day. The
spreadsheet API is slow, quota limited and has no partial updates, indexes
or transactions. This package sits between application logic and that
store:

Architecture:
    ┌──────────────────┐     ┌──────────────────────────────────────┐
    │ Attendance logic │────▶│            AttendanceStore           │
    │ (bot, reminders) │     │ get_rows / get_indexed_row / mutate  │
    └──────────────────┘     └───┬──────────────┬───────────────┬───┘
                                 │              │               │
                                 ▼              ▼               ▼
                        ┌──────────────┐ ┌─────────────┐ ┌──────────────┐
                        │ TableCache   │ │ Operation   │ │ Initializa-  │
                        │ RosterCache  │ │ Tracker     │ │ tion Coord.  │
                        │ (KeyIndex)   │ │ Invalidation│ │ (once/table) │
                        └──────┬───────┘ └─────────────┘ └──────┬───────┘
                               │                                │
                               ▼                                ▼
                        ┌─────────────────────────────────────────────┐
                        │     RetryExecutor (quota backoff)           │
                        └──────────────────────┬──────────────────────┘
                                               ▼
                        ┌─────────────────────────────────────────────┐
                        │   RemoteStore (Google Sheets / in-memory)   │
                        └─────────────────────────────────────────────┘

Invariants:
    - The remote store is the source of truth; all caches are rebuildable
    - A table is never invalidated while a write to it is in flight
    - A table's schema and seed rows are created at most once
    - An unverifiable table is never treated as absent

How to change safely:
    - Route every remote call through the RetryExecutor
    - Route every row mutation through the AttendanceStore write path

Version: see _version.py.
"""

from ._version import __version__
from .config import StoreConfig
from .remote import InMemoryRemoteStore, QuotaExceededError, RemoteStoreError
from .service import AttendanceStore, MutationResult, MutationStatus

__all__ = [
    "__version__",
    "AttendanceStore",
    "MutationResult",
    "MutationStatus",
    "StoreConfig",
    "InMemoryRemoteStore",
    "QuotaExceededError",
    "RemoteStoreError",
]
