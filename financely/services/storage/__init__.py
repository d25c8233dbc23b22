"""
Storage Services Package

Provides abstract interfaces and concrete implementations for the
household store. SQLite (via SQLAlchemy) is the default backend; Google
Sheets and an in-memory store implement the same interface.
"""

from financely.services.storage.interface import (
    AuditStorageInterface,
    HouseholdStorageInterface,
    NotFoundError,
    StorageError,
    StoreConnectionError,
)
from financely.services.storage.memory import InMemoryHouseholdStorage
from financely.services.storage.seed import build_demo_household
from financely.services.storage.sql_store import SQLHouseholdStorage
from financely.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsHouseholdStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "HouseholdStorageInterface",
    # Exceptions
    "NotFoundError",
    "StorageError",
    "StoreConnectionError",
    # Implementations
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsHouseholdStorage",
    "InMemoryHouseholdStorage",
    "SQLHouseholdStorage",
    # Seed data
    "build_demo_household",
]
