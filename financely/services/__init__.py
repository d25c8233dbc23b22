"""Services package."""

from financely.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsHouseholdStorage,
    HouseholdStorageInterface,
    InMemoryHouseholdStorage,
    NotFoundError,
    SQLHouseholdStorage,
    StorageError,
    StoreConnectionError,
)

__all__ = [
    "AuditStorageInterface",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsHouseholdStorage",
    "HouseholdStorageInterface",
    "InMemoryHouseholdStorage",
    "NotFoundError",
    "SQLHouseholdStorage",
    "StorageError",
    "StoreConnectionError",
]
