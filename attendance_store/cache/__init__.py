"""
Caching layer over the remote store.

- CacheStore: process-wide cache state (rows, key indexes, init state)
- TableCache: read-through, indexed access to any table
- RosterCache: TableCache pinned to the employee directory

Invariants:
    - Valid entries answer reads without remote calls
    - Key indexes are only trusted while their entry is valid
"""

from .roster import RosterCache
from .store import CacheEntry, CacheStore, KeyIndex
from .tables import TableCache

__all__ = [
    "CacheEntry",
    "CacheStore",
    "KeyIndex",
    "TableCache",
    "RosterCache",
]
