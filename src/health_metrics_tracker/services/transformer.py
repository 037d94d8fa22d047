"""
Row validation and transformation service.

Applies a column mapping to every parsed CSV row, coerces dates and numbers,
enforces per-field ranges and collects per-row errors without aborting the
batch.
"""

import logging
from collections.abc import Sequence

from health_metrics_tracker.domain.csv_table import ColumnMapping, RawTable
from health_metrics_tracker.domain.health_record import (
    FIELD_ORDER,
    FIELD_SPECS,
    HealthEntry,
    HealthField,
    ImportBatch,
)
from health_metrics_tracker.services.normalizer import NumberNormalizer
from health_metrics_tracker.utils.exceptions import FormatError, MappingIncompleteError
from health_metrics_tracker.utils.timezone_utils import parse_calendar_date

logger = logging.getLogger(__name__)


def missing_fields(mapping: ColumnMapping, headers: Sequence[str]) -> list[str]:
    """
    List the schema fields without a usable column.

    A field counts as missing when it is unmapped or mapped to a header
    that is not present in the file.

    Args:
        mapping: Field key to header mapping.
        headers: Headers of the current file.

    Returns:
        Missing field keys in schema order.
    """
    return [key for key in FIELD_ORDER if not mapping.get(key) or mapping[key] not in headers]


def auto_detect(headers: Sequence[str]) -> ColumnMapping:
    """
    Guess a column mapping from header text.

    For each field in schema order, picks the first header not already taken
    whose lowercase text contains the field key (with underscores or spaces)
    or the field label. Best effort only.

    Args:
        headers: Headers of the current file.

    Returns:
        Partial mapping of the fields that could be matched.
    """
    mapping: ColumnMapping = {}
    used: set[str] = set()

    for spec in FIELD_SPECS:
        key = spec.key.value
        needles = {key, key.replace("_", " "), spec.label.lower()}
        for header in headers:
            if header in used:
                continue
            text = header.lower()
            if any(needle in text for needle in needles):
                mapping[key] = header
                used.add(header)
                break

    logger.debug(f"Auto-detected mapping: {mapping}")
    return mapping


class RowTransformer:
    """
    Turns a raw table into a batch of validated health entries.

    Rows that fail validation are reported, not raised. When a date occurs
    more than once in a file, the last valid row for that date wins.
    """

    def __init__(self, normalizer: NumberNormalizer | None = None) -> None:
        """
        Initialize row transformer.

        Args:
            normalizer: Numeric cell normalizer.
        """
        self.normalizer = normalizer or NumberNormalizer()

    def _transform_row(
        self, row: Sequence[str], columns: dict[str, int]
    ) -> tuple[HealthEntry | None, list[str]]:
        """
        Validate a single row.

        Args:
            row: Cell values.
            columns: Field key to column index.

        Returns:
            Tuple of (entry or None, list of "<field>: <reason>" errors).
        """
        errors: list[str] = []
        values: dict[str, float | str | None] = {}

        raw_date = row[columns[HealthField.DATE.value]]
        try:
            values["date"] = parse_calendar_date(raw_date)
        except (ValueError, OverflowError):
            errors.append(f"date: invalid date '{raw_date}'")

        for spec in FIELD_SPECS[1:]:
            key = spec.key.value
            raw = row[columns[key]]
            try:
                number = self.normalizer.normalize(raw, key, allow_empty=True)
            except FormatError as e:
                errors.append(str(e))
                continue

            if number is not None and not spec.in_range(number):
                errors.append(f"{key}: value {number:g} out of range {spec.describe_range()}")
                continue
            values[key] = number

        if errors:
            return None, errors
        return HealthEntry(**values), []

    def transform(self, raw_table: RawTable, mapping: ColumnMapping) -> ImportBatch:
        """
        Validate and convert every row of a table.

        Args:
            raw_table: Parsed CSV table.
            mapping: Field key to header mapping.

        Returns:
            Batch of valid entries (deduplicated by date) and row errors.

        Raises:
            MappingIncompleteError: If any field has no mapped column.
        """
        missing = missing_fields(mapping, raw_table.headers)
        if missing:
            raise MappingIncompleteError(missing)

        columns: dict[str, int] = {}
        for key in FIELD_ORDER:
            index = raw_table.column_index(mapping[key])
            if index is not None:
                columns[key] = index

        by_date: dict[str, HealthEntry] = {}
        errors: list[str] = []
        duplicates = 0

        for row_number, row in enumerate(raw_table.rows, start=1):
            entry, row_errors = self._transform_row(row, columns)
            if entry is None:
                errors.append(f"Row {row_number}: {'; '.join(row_errors)}")
                continue

            # last occurrence of a date wins and takes its position
            if by_date.pop(entry.date, None) is not None:
                duplicates += 1
                logger.debug(f"Row {row_number}: replaces earlier row for {entry.date}")
            by_date[entry.date] = entry

        logger.info(
            f"Validated {len(raw_table.rows)} rows: {len(by_date)} entries, "
            f"{len(errors)} rejected, {duplicates} duplicate dates dropped"
        )

        return ImportBatch(
            entries=list(by_date.values()),
            errors=errors,
            total_rows=len(raw_table.rows),
            duplicates_dropped=duplicates,
        )
