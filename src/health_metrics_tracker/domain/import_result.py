"""
Reconciliation plan and import summary models.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from health_metrics_tracker.domain.health_record import HealthEntry, InsertMode


class OperationKind(str, Enum):
    """Kinds of record store operations issued by an import."""

    DELETE = "delete"
    UPSERT = "upsert"
    INSERT = "insert"


class Outcome(str, Enum):
    """Summary counter a successful write lands in."""

    ADDED = "added"
    REPLACED = "replaced"


class PersistenceOperation(BaseModel):
    """A single planned record store call."""

    kind: OperationKind
    dates: list[str] = Field(default_factory=list, description="Dates removed by a delete")
    entry: HealthEntry | None = Field(None, description="Entry written by an upsert or insert")
    outcome: Outcome | None = Field(None, description="Summary bucket if the write succeeds")


class ReconciliationPlan(BaseModel):
    """
    Ordered operations for one import.

    All deletes run to completion before the first write.
    """

    insert_mode: InsertMode
    deletes: list[PersistenceOperation] = Field(default_factory=list)
    writes: list[PersistenceOperation] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list, description="Dates left untouched")

    @property
    def operations(self) -> list[PersistenceOperation]:
        """Deletes followed by writes, in execution order."""
        return self.deletes + self.writes


class EntryFailure(BaseModel):
    """A batch entry whose write failed."""

    date: str
    cause: str


class ImportSummary(BaseModel):
    """Counts and failures of a finished import."""

    insert_mode: InsertMode
    added: int = 0
    replaced: int = 0
    skipped: int = 0
    failures: list[EntryFailure] = Field(default_factory=list)
    started_at: datetime | None = None
    finished_at: datetime | None = None

    def describe(self) -> str:
        """One-line human summary; always states all three counts."""
        return f"{self.added} added, {self.replaced} replaced, {self.skipped} skipped"

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return self.model_dump(mode="json")
