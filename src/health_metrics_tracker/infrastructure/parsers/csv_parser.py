"""
CSV parser for user-supplied health data exports.

Provides a quote-aware line splitter and conversion of raw file text
into a header list plus equally sized rows of trimmed string cells.
"""

import logging

from health_metrics_tracker.domain.csv_table import RawTable
from health_metrics_tracker.utils.exceptions import ParseError

logger = logging.getLogger(__name__)


def split_csv_line(line: str, delimiter: str = ",") -> list[str]:
    """
    Split one CSV line into trimmed fields.

    A double quote toggles the in-quotes state and is dropped from the
    field content; the delimiter only separates fields outside quotes.

    Args:
        line: Raw line without its line terminator.
        delimiter: Field delimiter.

    Returns:
        List of trimmed field values.
    """
    fields: list[str] = []
    current: list[str] = []
    in_quotes = False

    for ch in line:
        if ch == '"':
            in_quotes = not in_quotes
        elif ch == delimiter and not in_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(ch)

    fields.append("".join(current).strip())
    return fields


class CSVParser:
    """
    Parser for CSV health data files.

    Tolerates LF and CRLF line endings, blank lines and quoted fields
    containing commas. Rows whose field count does not match the header
    are dropped and counted rather than reported as errors.
    """

    def __init__(self, delimiter: str = ",") -> None:
        """
        Initialize CSV parser.

        Args:
            delimiter: Field delimiter.
        """
        self.delimiter = delimiter

    def parse(self, text: str) -> RawTable:
        """
        Parse CSV text into a raw table.

        Args:
            text: Full file contents.

        Returns:
            Raw table of headers and rows.

        Raises:
            ParseError: If there are fewer than two non-blank lines.
        """
        lines = [line for line in text.lstrip("\ufeff").split("\n") if line.strip()]
        if len(lines) < 2:
            raise ParseError(
                f"CSV must contain a header and at least one data line, found {len(lines)} line(s)"
            )

        headers = tuple(split_csv_line(lines[0], self.delimiter))
        rows: list[tuple[str, ...]] = []
        dropped = 0

        for line_number, line in enumerate(lines[1:], start=2):
            values = split_csv_line(line, self.delimiter)
            if len(values) != len(headers):
                logger.debug(
                    f"Line {line_number}: expected {len(headers)} fields, got {len(values)}, dropping"
                )
                dropped += 1
                continue
            rows.append(tuple(values))

        if dropped:
            logger.warning(f"Dropped {dropped} malformed line(s)")

        logger.info(f"Parsed {len(rows)} rows with {len(headers)} columns")
        return RawTable(headers=headers, rows=tuple(rows), dropped_rows=dropped)
