"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Run on SQLite locally or on Google Sheets for users who want to see
   their data in a spreadsheet
2. Use in-memory storage for testing
3. Keep the ledger decoupled from storage implementation

The interface is intentionally small: the store holds one household
snapshot. `save` replaces whole collections; there are no row-level
patches, so a save can never leave half an expense behind.

Lifecycle is explicit: open() creates the schema (and seeds the demo
household when the store is empty), close() releases the handle.
"""

from abc import ABC, abstractmethod

from financely.models.audit import AuditEvent
from financely.models.household import Household, HouseholdUpdate


class HouseholdStorageInterface(ABC):
    """
    Abstract interface for household snapshot storage.

    Any storage implementation (SQL, Google Sheets, memory)
    must implement these methods.
    """

    @abstractmethod
    async def open(self) -> None:
        """
        Prepare the store: create schema, seed when empty.

        Raises:
            StoreConnectionError: If the backend cannot be reached
        """
        pass

    @abstractmethod
    async def load(self) -> Household:
        """
        Load the full household snapshot.

        Returns:
            The household as currently persisted

        Raises:
            StorageError: If the read fails
            NotFoundError: If the store holds no household
        """
        pass

    @abstractmethod
    async def save(self, update: HouseholdUpdate) -> bool:
        """
        Replace the collections named in `update`.

        Either every named collection is replaced or none is.

        Returns:
            True if saved successfully

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release connections. Safe to call twice."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events (newest first).
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class StoreConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
