"""
Base protocol and types for the remote tabular store.

The remote store is a spreadsheet-style backend addressed by named tables,
each holding a header row and key-value rows. It is slow, quota limited and
offers no partial updates, secondary indexes or transactions. This module
defines the RemoteStore protocol every backend implements, the Row record,
and the error types shared by all backends.

Invariants:
    - A table is "initialized" once its header row is non-empty
    - Row.save() persists only that row; there is no multi-row commit
    - Quota failures are distinguishable from every other failure

How to change safely:
    - Protocol changes require updating all implementations
    - Keep is_quota_error() structured-first; message matching is a fallback
"""

from __future__ import annotations

from abc import abstractmethod
from typing import (
    Any,
    Dict,
    List,
    Optional,
    Protocol,
    runtime_checkable,
    TYPE_CHECKING,
)
import logging

if TYPE_CHECKING:
    from ..config import StoreConfig

logger = logging.getLogger(__name__)

QUOTA_STATUS_CODES = frozenset({429})
QUOTA_STATUS_NAMES = frozenset({"RESOURCE_EXHAUSTED", "RATE_LIMIT_EXCEEDED"})
QUOTA_MESSAGE_MARKERS = ("429", "quota", "rate limit", "ratelimit", "resource_exhausted")


class RemoteStoreError(Exception):
    """Base exception for remote store operations.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "REMOTE_ERROR"
        self.details = details or {}


class RemoteConnectionError(RemoteStoreError):
    """Connection to the remote store failed or was never established."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="CONNECTION_ERROR")


class QuotaExceededError(RemoteStoreError):
    """The remote store's call-rate quota was exceeded.

    Raised by backends for rate-limit responses, and by the RetryExecutor
    when its retry budget is spent on quota failures.
    """

    def __init__(
        self,
        message: str,
        attempts: Optional[int] = None,
    ) -> None:
        super().__init__(
            message,
            code="QUOTA_EXCEEDED",
            details={"attempts": attempts},
        )
        self.attempts = attempts


class TableNotFoundError(RemoteStoreError):
    """A named table does not exist in the remote store."""

    def __init__(self, table: str) -> None:
        super().__init__(
            f"Table '{table}' does not exist",
            code="TABLE_NOT_FOUND",
            details={"table": table},
        )
        self.table = table


def is_quota_error(error: BaseException) -> bool:
    """Return True if an error signals the remote quota was exceeded.

    Structured signals are checked first (our own QuotaExceededError, an
    HTTP status of 429 on the error or its response, a RESOURCE_EXHAUSTED
    status). The message is inspected only when no structured code exists.
    """
    if isinstance(error, QuotaExceededError):
        return True

    codes = [getattr(error, "code", None), getattr(error, "status_code", None)]
    response = getattr(error, "response", None)
    if response is not None:
        codes.append(getattr(response, "status_code", None))
        if isinstance(response, dict):
            codes.append(response.get("code"))
            codes.append(response.get("status"))

    structured = False
    for code in codes:
        if code is None or isinstance(code, bool):
            continue
        if isinstance(code, int):
            structured = True
            if code in QUOTA_STATUS_CODES:
                return True
        elif isinstance(code, str):
            if code.upper() in QUOTA_STATUS_NAMES:
                return True
            if code.isdigit():
                structured = True
                if int(code) in QUOTA_STATUS_CODES:
                    return True

    if structured:
        return False

    message = str(error).lower()
    return any(marker in message for marker in QUOTA_MESSAGE_MARKERS)


class Row:
    """A mutable key-value record fetched from a remote table.

    Field mutations are local until save() is called, which persists this
    single row through the store that produced it.

    Attributes:
        table: Name of the owning table
        row_number: 1-based sheet row number (the header is row 1)
    """

    def __init__(
        self,
        store: RemoteStore,
        table: str,
        row_number: int,
        values: Dict[str, str],
    ) -> None:
        self._store = store
        self.table = table
        self.row_number = row_number
        self._values = dict(values)

    def get(self, field_name: str, default: str = "") -> str:
        value = self._values.get(field_name)
        if value is None:
            return default
        return value

    def set(self, field_name: str, value: Any) -> None:
        self._values[field_name] = "" if value is None else str(value)

    def to_dict(self) -> Dict[str, str]:
        return dict(self._values)

    def restore(self, values: Dict[str, str]) -> None:
        """Replace all local values, discarding unsaved mutations."""
        self._values = dict(values)

    async def save(self) -> None:
        """Persist in-place field mutations to the remote store."""
        await self._store.save_row(self)

    def __repr__(self) -> str:
        return f"Row(table={self.table!r}, row_number={self.row_number})"


@runtime_checkable
class RemoteStore(Protocol):
    """Protocol for remote tabular store backends.

    Every method is a suspension point. Backends raise QuotaExceededError
    (or an error is_quota_error() recognizes) for rate-limit failures and
    RemoteStoreError subclasses for everything else they can classify.

    Example:
        >>> remote = InMemoryRemoteStore()
        >>> await remote.connect()
        >>> await remote.create_table("2025-01-01")
        >>> await remote.set_header("2025-01-01", ["Name", "TelegramId"])
        >>> row = await remote.append_row("2025-01-01", {"Name": "Ann", "TelegramId": "42"})
        >>> row.set("Name", "Anna")
        >>> await row.save()
    """

    @abstractmethod
    async def connect(self) -> None:
        """Connect to the backend.

        Raises:
            RemoteConnectionError: If connection fails
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release backend resources."""
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether currently connected to the backend."""
        ...

    @abstractmethod
    async def list_tables(self) -> List[str]:
        """List the names of all tables."""
        ...

    @abstractmethod
    async def create_table(self, name: str) -> None:
        """Create an empty table (no header, no rows)."""
        ...

    @abstractmethod
    async def load_header(self, table: str) -> List[str]:
        """Load a table's header row; empty list if it has none.

        Raises:
            TableNotFoundError: If the table does not exist
        """
        ...

    @abstractmethod
    async def set_header(self, table: str, fields: List[str]) -> None:
        """Write a table's header row."""
        ...

    @abstractmethod
    async def get_rows(
        self,
        table: str,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Row]:
        """Read data rows (below the header) as Row objects."""
        ...

    @abstractmethod
    async def get_raw_values(self, table: str, limit: Optional[int] = None) -> List[List[str]]:
        """Read raw cell values, header row included, without parsing."""
        ...

    @abstractmethod
    async def append_row(self, table: str, fields: Dict[str, Any]) -> Row:
        """Append a row after the last data row."""
        ...

    @abstractmethod
    async def save_row(self, row: Row) -> None:
        """Persist a previously fetched row's current values."""
        ...

    @abstractmethod
    async def resize(self, table: str, row_count: int, column_count: int) -> None:
        """Reshape a table's grid."""
        ...


def create_remote_store(config: "StoreConfig") -> RemoteStore:
    """Factory function to create a remote store from configuration.

    Args:
        config: Store configuration

    Returns:
        Appropriate RemoteStore implementation

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import RemoteBackend
    from .memory import InMemoryRemoteStore
    from .sheets import GoogleSheetsRemoteStore

    if config.remote_backend == RemoteBackend.SHEETS:
        return GoogleSheetsRemoteStore(config.sheets)
    elif config.remote_backend == RemoteBackend.MEMORY:
        return InMemoryRemoteStore()
    else:
        raise ValueError(f"Unsupported remote backend: {config.remote_backend}")
