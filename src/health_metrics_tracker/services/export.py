"""
Export service for writing validated import batches back to CSV.

Uses the fixed internal column order and renders numbers without any
locale formatting so an exported file parses back to the same values.
"""

import json
import logging
from pathlib import Path

import numpy as np
import pandas as pd

from health_metrics_tracker.domain.health_record import FIELD_ORDER, HealthEntry, ImportBatch
from health_metrics_tracker.domain.import_result import ImportSummary

logger = logging.getLogger(__name__)


def format_number(value: float | None) -> str:
    """
    Render a metric for CSV output.

    Args:
        value: Metric value or None.

    Returns:
        "" for None, an integer literal for integral values, otherwise the
        shortest round-trip representation in positional notation. Exponent
        notation would not survive re-import through the number normalizer.
    """
    if value is None:
        return ""
    if float(value).is_integer():
        return str(int(value))
    return np.format_float_positional(float(value), trim="-")


def _entry_row(entry: HealthEntry) -> dict[str, str]:
    row = {"date": entry.date}
    row.update({name: format_number(value) for name, value in entry.metrics().items()})
    return row


class BatchExporter:
    """Serializes import batches to CSV text or files."""

    def to_frame(self, batch: ImportBatch) -> pd.DataFrame:
        """
        Build a string-valued DataFrame of the batch in canonical column order.

        Args:
            batch: Validated import batch.

        Returns:
            DataFrame with one row per entry.
        """
        data = [_entry_row(entry) for entry in batch.entries]
        return pd.DataFrame(data, columns=list(FIELD_ORDER), dtype=str)

    def export_batch(self, batch: ImportBatch) -> str:
        """
        Serialize a batch to CSV text.

        Args:
            batch: Validated import batch.

        Returns:
            CSV text with a header line and one line per entry.
        """
        return self.to_frame(batch).to_csv(index=False, lineterminator="\n")

    def write_batch(self, batch: ImportBatch, output_file: Path) -> None:
        """
        Write a batch to a CSV file.

        Args:
            batch: Validated import batch.
            output_file: Destination path.
        """
        output_file.parent.mkdir(parents=True, exist_ok=True)
        with open(output_file, "w", encoding="utf-8", newline="") as f:
            f.write(self.export_batch(batch))
        logger.info(f"Wrote {len(batch.entries)} entries to {output_file}")


class ImportLogWriter:
    """
    Post-import hook appending one JSON line per finished import.

    Args:
        log_path: JSONL file to append to.
        source: Label of the imported file.
    """

    def __init__(self, log_path: Path, source: str | None = None) -> None:
        self.log_path = log_path
        self.source = source

    def __call__(self, summary: ImportSummary) -> None:
        event = {"source": self.source, **summary.to_dict()}
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(event, default=str) + "\n")
        logger.debug(f"Appended import event to {self.log_path}")
