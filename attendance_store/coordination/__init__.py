"""
Coordination primitives for the cache layer.

- OperationTracker: in-flight write counts per table
- InvalidationScheduler: delayed, cancel-and-replace cache clears
- InitializationCoordinator: once-only table creation and seeding

All of them assume a single event loop: state is never touched from other
threads, and races are interleavings at await points.
"""

from .initialization import (
    InitializationCoordinator,
    SchemaFn,
    TableSetup,
    TableState,
)
from .invalidation import InvalidationScheduler
from .tracker import OperationTracker

__all__ = [
    "OperationTracker",
    "InvalidationScheduler",
    "InitializationCoordinator",
    "SchemaFn",
    "TableSetup",
    "TableState",
]
