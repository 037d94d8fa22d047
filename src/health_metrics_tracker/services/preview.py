"""
Batch preview service.

Summarizes a validated batch before it is imported: the covered date range
and, for each metric, how many days have a value and their mean, minimum
and maximum.
"""

import logging
from typing import Any

import pandas as pd
from pydantic import BaseModel, Field

from health_metrics_tracker.domain.health_record import NUMERIC_FIELDS, HealthEntry, ImportBatch

logger = logging.getLogger(__name__)


class FieldStatistics(BaseModel):
    """Statistics of one metric across a batch."""

    count: int = 0
    mean: float | None = None
    minimum: float | None = None
    maximum: float | None = None


class BatchPreview(BaseModel):
    """Review-step summary of a batch."""

    entries: int = 0
    rejected_rows: int = 0
    duplicates_dropped: int = 0
    date_from: str | None = None
    date_to: str | None = None
    fields: dict[str, FieldStatistics] = Field(default_factory=dict)


def _optional(value: Any) -> float | None:
    return None if pd.isna(value) else round(float(value), 2)


class PreviewService:
    """Computes batch previews with pandas."""

    def sorted_entries(self, batch: ImportBatch) -> list[HealthEntry]:
        """Return the batch entries in date order, for charting."""
        return sorted(batch.entries, key=lambda entry: entry.date)

    def summarize(self, batch: ImportBatch) -> BatchPreview:
        """
        Summarize a batch.

        Args:
            batch: Validated import batch.

        Returns:
            Batch preview.
        """
        preview = BatchPreview(
            entries=len(batch.entries),
            rejected_rows=len(batch.errors),
            duplicates_dropped=batch.duplicates_dropped,
        )

        if batch.is_empty:
            preview.fields = {name: FieldStatistics() for name in NUMERIC_FIELDS}
            return preview

        df = pd.DataFrame([entry.model_dump() for entry in batch.entries])
        df = df.sort_values("date")

        preview.date_from = str(df["date"].iloc[0])
        preview.date_to = str(df["date"].iloc[-1])

        for name in NUMERIC_FIELDS:
            values = pd.to_numeric(df[name], errors="coerce")
            preview.fields[name] = FieldStatistics(
                count=int(values.count()),
                mean=_optional(values.mean()),
                minimum=_optional(values.min()),
                maximum=_optional(values.max()),
            )

        logger.debug(f"Preview of {preview.entries} entries from {preview.date_from} to {preview.date_to}")
        return preview
