"""
In-Memory Storage

Keeps the household snapshot in process. Used by the tests and as the
`memory` backend for trying the ledger without a database.

Snapshots are deep-copied on the way in and out so callers can never
mutate stored state without going through save().
"""

from typing import Optional

from financely.models.audit import AuditEvent
from financely.models.household import Household, HouseholdUpdate
from financely.services.storage.interface import (
    AuditStorageInterface,
    HouseholdStorageInterface,
    NotFoundError,
    StorageError,
)
from financely.services.storage.seed import build_demo_household


class InMemoryHouseholdStorage(HouseholdStorageInterface, AuditStorageInterface):
    """Household and audit storage held in a Python object."""

    def __init__(
        self,
        household: Optional[Household] = None,
        seed_demo_data: bool = False,
    ):
        self._household = household.model_copy(deep=True) if household else None
        self._seed_demo_data = seed_demo_data
        self._events: list[AuditEvent] = []
        self._is_open = False

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def open(self) -> None:
        if self._household is None:
            self._household = (
                build_demo_household() if self._seed_demo_data else Household()
            )
        self._is_open = True

    async def load(self) -> Household:
        if not self._is_open:
            raise StorageError("Store is not open")
        if self._household is None:
            raise NotFoundError("No household stored")
        return self._household.model_copy(deep=True)

    async def save(self, update: HouseholdUpdate) -> bool:
        if not self._is_open:
            raise StorageError("Store is not open")
        if self._household is None:
            raise NotFoundError("No household stored")
        try:
            self._household = self._household.apply_update(update)
        except ValueError as e:
            raise StorageError(f"Failed to save household: {e}") from e
        return True

    async def close(self) -> None:
        self._is_open = False

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
