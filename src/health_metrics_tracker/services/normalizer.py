"""
Numeric cell normalization.
"""

import math
import re

from health_metrics_tracker.utils.exceptions import FormatError

_NON_NUMERIC_RE = re.compile(r"[^0-9.]")


class NumberNormalizer:
    """Turns raw string cells into floats, tolerating a comma decimal separator."""

    def normalize(self, raw: str, field_label: str, allow_empty: bool = False) -> float | None:
        """
        Convert a raw cell to a number.

        A comma is read as the decimal separator only when the value has no
        dot. Any character other than digits, dots and a leading minus is
        discarded before parsing.

        Args:
            raw: Raw cell value.
            field_label: Field name reported in errors.
            allow_empty: Return None for an empty cell instead of failing.

        Returns:
            Parsed value, or None for an empty cell when allowed.

        Raises:
            FormatError: If the cleaned value is not a finite number.
        """
        value = raw.strip()
        if not value and allow_empty:
            return None

        if "," in value and "." not in value:
            value = value.replace(",", ".")

        negative = value.startswith("-")
        cleaned = _NON_NUMERIC_RE.sub("", value)
        if not cleaned:
            raise FormatError(field_label, raw)

        try:
            number = float(cleaned)
        except ValueError as e:
            raise FormatError(field_label, raw) from e

        if not math.isfinite(number):
            raise FormatError(field_label, raw)

        return -number if negative else number
