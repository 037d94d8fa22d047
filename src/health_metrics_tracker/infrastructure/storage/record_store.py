"""
Health record persistence.

Defines the record store interface used by the import reconciler and
provides an in-memory store plus a JSON file store for local use.
"""

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter, ValidationError

from health_metrics_tracker.domain.health_record import HealthEntry, HealthRecord
from health_metrics_tracker.utils.exceptions import PersistenceError

logger = logging.getLogger(__name__)

_RECORD_LIST = TypeAdapter(list[HealthRecord])


class HealthRecordRepository(ABC):
    """
    Store of health records keyed uniquely by (user_id, date).

    Implementations report failures as PersistenceError.
    """

    @abstractmethod
    def list_by_user(self, user_id: str) -> list[HealthRecord]:
        """Return all records of a user."""

    @abstractmethod
    def upsert(self, user_id: str, date: str, fields: dict[str, Any]) -> None:
        """Create or fully replace the record of a user for a date."""

    @abstractmethod
    def delete_where(self, user_id: str, dates: Iterable[str]) -> int:
        """Delete the records of a user for the given dates, returning how many were removed."""

    @abstractmethod
    def insert(self, user_id: str, entry: HealthEntry) -> None:
        """Insert a new record; fails if one already exists for that date."""


class InMemoryHealthRecordRepository(HealthRecordRepository):
    """Record store held in process memory."""

    def __init__(self, records: Iterable[HealthRecord] | None = None) -> None:
        self._records: dict[tuple[str, str], HealthRecord] = {}
        for record in records or []:
            self._records[(record.user_id, record.date)] = record

    def list_by_user(self, user_id: str) -> list[HealthRecord]:
        records = [r for (owner, _), r in self._records.items() if owner == user_id]
        return sorted(records, key=lambda r: r.date)

    def get(self, user_id: str, date: str) -> HealthRecord | None:
        """Return a single record, if present."""
        return self._records.get((user_id, date))

    def upsert(self, user_id: str, date: str, fields: dict[str, Any]) -> None:
        try:
            record = HealthRecord(user_id=user_id, date=date, **fields)
        except ValidationError as e:
            raise PersistenceError(f"Invalid record for {date}: {e}") from e
        pending = dict(self._records)
        pending[(user_id, date)] = record
        self._commit(pending)

    def delete_where(self, user_id: str, dates: Iterable[str]) -> int:
        pending = dict(self._records)
        removed = 0
        for date in set(dates):
            if pending.pop((user_id, date), None) is not None:
                removed += 1
        if removed:
            self._commit(pending)
        return removed

    def insert(self, user_id: str, entry: HealthEntry) -> None:
        key = (user_id, entry.date)
        if key in self._records:
            raise PersistenceError(f"Record already exists for {entry.date}")
        pending = dict(self._records)
        pending[key] = HealthRecord(user_id=user_id, **entry.model_dump())
        self._commit(pending)

    def _commit(self, records: dict[tuple[str, str], HealthRecord]) -> None:
        """
        Make a changed record set current.

        Writes are applied to a copy that only replaces the current records
        once this returns, so a failed commit leaves the store unchanged.

        Raises:
            PersistenceError: If the change cannot be stored.
        """
        self._records = records


class JsonFileHealthRecordRepository(InMemoryHealthRecordRepository):
    """
    Record store persisted to a single JSON file.

    The whole file is rewritten after each write.
    """

    def __init__(self, path: str | Path) -> None:
        """
        Initialize JSON record store.

        Args:
            path: Location of the JSON file.

        Raises:
            PersistenceError: If an existing file cannot be read.
        """
        self.path = Path(path)
        super().__init__(self._load())

    def _load(self) -> list[HealthRecord]:
        if not self.path.exists():
            return []

        try:
            with open(self.path, encoding="utf-8") as f:
                records = _RECORD_LIST.validate_python(json.load(f))
            logger.info(f"Loaded {len(records)} health records from {self.path}")
            return records
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            raise PersistenceError(f"Failed to load health records from {self.path}: {e}") from e

    def _commit(self, records: dict[tuple[str, str], HealthRecord]) -> None:
        ordered = sorted(records.values(), key=lambda r: (r.user_id, r.date))
        payload = _RECORD_LIST.dump_json(ordered, indent=2).decode("utf-8")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                f.write(payload)
        except OSError as e:
            raise PersistenceError(f"Failed to write health records to {self.path}: {e}") from e
        super()._commit(records)
