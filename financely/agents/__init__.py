"""AI agents package."""

from financely.agents.interface import (
    HouseholdOracle,
    OracleError,
    OracleUnavailableError,
    SchemaMismatchError,
)
from financely.agents.gemini_oracle import GeminiOracle

__all__ = [
    "GeminiOracle",
    "HouseholdOracle",
    "OracleError",
    "OracleUnavailableError",
    "SchemaMismatchError",
]
