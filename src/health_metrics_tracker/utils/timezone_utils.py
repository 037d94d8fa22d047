"""
Date and timezone utilities.

Calendar-day parsing for imported rows and timezone-aware timestamps
for saved mappings and import summaries.
"""

from datetime import datetime

import pytz
from dateutil import parser


def now_in_timezone(timezone_str: str = "UTC") -> datetime:
    """
    Get the current time as a timezone-aware datetime.

    Args:
        timezone_str: Timezone string (e.g., "America/Santiago").

    Returns:
        Timezone-aware datetime object.
    """
    return datetime.now(pytz.timezone(timezone_str))


def parse_calendar_date(value: str) -> str:
    """
    Parse an ISO 8601 date (or datetime) and return its calendar day.

    Args:
        value: Date string such as "2024-01-15" or "2024-01-15T08:30:00".

    Returns:
        Canonical "YYYY-MM-DD" string.

    Raises:
        ValueError: If the value is empty or not a valid ISO 8601 date.
    """
    value = value.strip()
    if not value:
        raise ValueError("empty date")

    return parser.isoparse(value).date().isoformat()
