"""
Health record domain models and the fixed import schema.

This module defines the canonical daily health entry, the per-user stored
record, the field schema used to validate imported values, and the
transient batch produced by a CSV import.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


class HealthField(str, Enum):
    """Internal field keys, in canonical column order."""

    DATE = "date"
    MOOD = "mood"
    ENERGY = "energy"
    SLEEP_HOURS = "sleep_hours"
    EXERCISE_MINUTES = "exercise_minutes"
    STRESS_LEVEL = "stress_level"
    WATER_INTAKE = "water_intake"


class FieldSpec(BaseModel):
    """Import schema entry for one internal field."""

    key: HealthField
    label: str = Field(description="Short human label, also used for header auto-detection")
    minimum: float | None = None
    maximum: float | None = None

    model_config = ConfigDict(frozen=True)

    def in_range(self, value: float) -> bool:
        """Check a numeric value against the declared bounds."""
        if self.minimum is not None and value < self.minimum:
            return False
        if self.maximum is not None and value > self.maximum:
            return False
        return True

    def describe_range(self) -> str:
        """Render the declared bounds for error messages."""
        if self.maximum is None:
            return f">= {self.minimum:g}"
        return f"[{self.minimum:g}, {self.maximum:g}]"


FIELD_SPECS: tuple[FieldSpec, ...] = (
    FieldSpec(key=HealthField.DATE, label="Date"),
    FieldSpec(key=HealthField.MOOD, label="Mood", minimum=1, maximum=10),
    FieldSpec(key=HealthField.ENERGY, label="Energy", minimum=1, maximum=10),
    FieldSpec(key=HealthField.SLEEP_HOURS, label="Sleep", minimum=0, maximum=24),
    FieldSpec(key=HealthField.EXERCISE_MINUTES, label="Exercise", minimum=0),
    FieldSpec(key=HealthField.STRESS_LEVEL, label="Stress", minimum=1, maximum=10),
    FieldSpec(key=HealthField.WATER_INTAKE, label="Water", minimum=0),
)

FIELD_ORDER: tuple[str, ...] = tuple(spec.key.value for spec in FIELD_SPECS)
NUMERIC_FIELDS: tuple[str, ...] = FIELD_ORDER[1:]


class InsertMode(str, Enum):
    """Reconciliation policy chosen per import."""

    MERGE = "merge"
    OVERWRITE = "overwrite"
    NEW = "new"


class HealthEntry(BaseModel):
    """
    One day of health metrics, as validated from an imported row.

    Numeric metrics are optional; the date is a canonical calendar day.
    """

    date: str = Field(pattern=DATE_PATTERN, description="Calendar day (YYYY-MM-DD)")
    mood: float | None = Field(None, ge=1, le=10)
    energy: float | None = Field(None, ge=1, le=10)
    sleep_hours: float | None = Field(None, ge=0, le=24)
    exercise_minutes: float | None = Field(None, ge=0)
    stress_level: float | None = Field(None, ge=1, le=10)
    water_intake: float | None = Field(None, ge=0)

    def metrics(self) -> dict[str, Any]:
        """Return the numeric fields (nulls included), keyed by field name."""
        return {name: getattr(self, name) for name in NUMERIC_FIELDS}


class HealthRecord(HealthEntry):
    """
    Stored health record.

    The natural key is (user_id, date): at most one record per user per day.
    """

    user_id: str = Field(min_length=1)


class ImportBatch(BaseModel):
    """
    Validated rows of one import plus the errors of the rejected rows.

    Exists only for the duration of a single import.
    """

    entries: list[HealthEntry] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    total_rows: int = 0
    duplicates_dropped: int = 0

    @property
    def dates(self) -> list[str]:
        """Dates of all entries, in batch order."""
        return [entry.date for entry in self.entries]

    @property
    def is_empty(self) -> bool:
        """True when no row survived validation."""
        return not self.entries
