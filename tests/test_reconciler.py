"""Unit tests for import reconciler."""

from collections.abc import Iterable
from pathlib import Path
from typing import Any

import pytest

from health_metrics_tracker.domain.health_record import (
    HealthEntry,
    HealthRecord,
    ImportBatch,
    InsertMode,
)
from health_metrics_tracker.domain.import_result import OperationKind, Outcome
from health_metrics_tracker.infrastructure.storage.record_store import (
    InMemoryHealthRecordRepository,
    JsonFileHealthRecordRepository,
)
from health_metrics_tracker.services.reconciler import ImportReconciler
from health_metrics_tracker.utils.exceptions import PersistenceError, ReconciliationError
from health_metrics_tracker.utils.parameters import ImporterConfig


class FailingRepository(InMemoryHealthRecordRepository):
    """Record store that refuses writes for some dates."""

    def __init__(self, failing_dates: Iterable[str] = (), fail_delete: bool = False, **kwargs: Any):
        super().__init__(**kwargs)
        self.failing_dates = set(failing_dates)
        self.fail_delete = fail_delete
        self.calls: list[str] = []

    def upsert(self, user_id: str, date: str, fields: dict[str, Any]) -> None:
        self.calls.append(f"upsert:{date}")
        if date in self.failing_dates:
            raise PersistenceError(f"write refused for {date}")
        super().upsert(user_id, date, fields)

    def insert(self, user_id: str, entry: HealthEntry) -> None:
        self.calls.append(f"insert:{entry.date}")
        if entry.date in self.failing_dates:
            raise PersistenceError(f"write refused for {entry.date}")
        super().insert(user_id, entry)

    def delete_where(self, user_id: str, dates: Iterable[str]) -> int:
        dates = list(dates)
        self.calls.append(f"delete:{','.join(dates)}")
        if self.fail_delete:
            raise PersistenceError("delete refused")
        return super().delete_where(user_id, dates)


def make_batch(*dates: str, mood: float = 7) -> ImportBatch:
    return ImportBatch(entries=[HealthEntry(date=d, mood=mood) for d in dates], total_rows=len(dates))


def existing_records(*dates: str) -> list[HealthRecord]:
    return [HealthRecord(user_id="u1", date=d, mood=3) for d in dates]


def test_merge_counts_added_and_replaced() -> None:
    """Test that merge replaces existing dates and adds new ones."""
    repo = InMemoryHealthRecordRepository(existing_records("2024-03-01"))
    reconciler = ImportReconciler(repo, ImporterConfig())

    summary = reconciler.reconcile("u1", make_batch("2024-03-01", "2024-03-02"), InsertMode.MERGE)

    if (summary.added, summary.replaced, summary.skipped) != (1, 1, 0):
        raise AssertionError(f"Expected 1/1/0, got {summary.describe()}")
    record = repo.get("u1", "2024-03-01")
    if record is None or record.mood != 7:
        raise AssertionError(f"Expected replaced mood=7, got {record}")


def test_merge_is_idempotent() -> None:
    """Test that importing the same batch twice leaves the same records."""
    repo = InMemoryHealthRecordRepository()
    reconciler = ImportReconciler(repo, ImporterConfig())
    batch = make_batch("2024-03-01", "2024-03-02")

    reconciler.reconcile("u1", batch, InsertMode.MERGE)
    first = repo.list_by_user("u1")
    summary = reconciler.reconcile("u1", batch, InsertMode.MERGE)

    if repo.list_by_user("u1") != first:
        raise AssertionError("Expected records to be unchanged by a repeated merge")
    if (summary.added, summary.replaced) != (0, 2):
        raise AssertionError(f"Expected 0 added and 2 replaced, got {summary.describe()}")


def test_overwrite_counts_every_entry_as_added() -> None:
    """Test that overwrite deletes the batch dates and reports all entries as added."""
    repo = InMemoryHealthRecordRepository(existing_records("2024-03-01", "2024-02-01"))
    reconciler = ImportReconciler(repo, ImporterConfig())

    summary = reconciler.reconcile("u1", make_batch("2024-03-01", "2024-03-02"), InsertMode.OVERWRITE)

    if (summary.added, summary.replaced, summary.skipped) != (2, 0, 0):
        raise AssertionError(f"Expected 2/0/0, got {summary.describe()}")
    dates = [r.date for r in repo.list_by_user("u1")]
    if dates != ["2024-02-01", "2024-03-01", "2024-03-02"]:
        raise AssertionError(f"Expected dates outside the batch to survive, got {dates}")


def test_new_skips_existing_dates() -> None:
    """Test that new mode never touches existing records."""
    repo = InMemoryHealthRecordRepository(existing_records("2024-03-01"))
    reconciler = ImportReconciler(repo, ImporterConfig())

    summary = reconciler.reconcile("u1", make_batch("2024-03-01", "2024-03-02"), InsertMode.NEW)

    if (summary.added, summary.replaced, summary.skipped) != (1, 0, 1):
        raise AssertionError(f"Expected 1/0/1, got {summary.describe()}")
    record = repo.get("u1", "2024-03-01")
    if record is None or record.mood != 3:
        raise AssertionError(f"Expected existing record untouched, got {record}")


def test_counts_sum_to_batch_size() -> None:
    """Test that every entry lands in exactly one summary bucket."""
    repo = FailingRepository(failing_dates={"2024-03-03"}, records=existing_records("2024-03-01"))
    reconciler = ImportReconciler(repo, ImporterConfig())
    batch = make_batch("2024-03-01", "2024-03-02", "2024-03-03", "2024-03-04")

    for mode in InsertMode:
        summary = reconciler.reconcile("u1", batch, mode)
        total = summary.added + summary.replaced + summary.skipped
        if total != len(batch.entries):
            raise AssertionError(f"{mode.value}: expected {len(batch.entries)} counted, got {total}")


def test_failed_write_is_skipped_and_import_continues() -> None:
    """Test that a write failure is counted as skipped without aborting."""
    repo = FailingRepository(failing_dates={"2024-03-02"})
    reconciler = ImportReconciler(repo, ImporterConfig())

    summary = reconciler.reconcile(
        "u1", make_batch("2024-03-01", "2024-03-02", "2024-03-03"), InsertMode.MERGE
    )

    if (summary.added, summary.skipped) != (2, 1):
        raise AssertionError(f"Expected 2 added and 1 skipped, got {summary.describe()}")
    if [f.date for f in summary.failures] != ["2024-03-02"]:
        raise AssertionError(f"Expected failure for 2024-03-02, got {summary.failures}")
    if repo.get("u1", "2024-03-03") is None:
        raise AssertionError("Expected entries after the failure to be written")


def test_overwrite_delete_failure_raises() -> None:
    """Test that a failing delete phase aborts the import before any write."""
    repo = FailingRepository(fail_delete=True)
    reconciler = ImportReconciler(repo, ImporterConfig())

    with pytest.raises(ReconciliationError):
        reconciler.reconcile("u1", make_batch("2024-03-01"), InsertMode.OVERWRITE)

    if any(call.startswith("insert") for call in repo.calls):
        raise AssertionError(f"Expected no writes, got {repo.calls}")


def test_plan_puts_deletes_before_writes_in_chunks() -> None:
    """Test overwrite plan ordering and delete chunking."""
    reconciler = ImportReconciler(InMemoryHealthRecordRepository(), ImporterConfig(chunk_size=2))
    batch = make_batch("2024-03-01", "2024-03-02", "2024-03-03")

    plan = reconciler.plan(batch, InsertMode.OVERWRITE, existing_dates=set())

    kinds = [op.kind for op in plan.operations]
    expected = [OperationKind.DELETE] * 2 + [OperationKind.INSERT] * 3
    if kinds != expected:
        raise AssertionError(f"Expected {expected}, got {kinds}")
    if [op.dates for op in plan.deletes] != [["2024-03-01", "2024-03-02"], ["2024-03-03"]]:
        raise AssertionError(f"Unexpected delete chunks: {plan.deletes}")


def test_plan_merge_outcomes() -> None:
    """Test that merge outcomes follow the existing dates."""
    reconciler = ImportReconciler(InMemoryHealthRecordRepository(), ImporterConfig())

    plan = reconciler.plan(make_batch("2024-03-01", "2024-03-02"), InsertMode.MERGE, {"2024-03-02"})

    outcomes = [op.outcome for op in plan.writes]
    if outcomes != [Outcome.ADDED, Outcome.REPLACED]:
        raise AssertionError(f"Unexpected outcomes: {outcomes}")
    if any(op.kind != OperationKind.UPSERT for op in plan.writes):
        raise AssertionError("Expected only upserts in a merge plan")


def test_progress_reported_per_write() -> None:
    """Test that progress is reported after every write across chunks."""
    reconciler = ImportReconciler(InMemoryHealthRecordRepository(), ImporterConfig(chunk_size=2))
    progress: list[tuple[int, int]] = []

    reconciler.reconcile(
        "u1",
        make_batch("2024-03-01", "2024-03-02", "2024-03-03"),
        InsertMode.MERGE,
        progress_callback=lambda done, total: progress.append((done, total)),
    )

    if progress != [(1, 3), (2, 3), (3, 3)]:
        raise AssertionError(f"Unexpected progress: {progress}")


def test_summary_timestamps_and_description() -> None:
    """Test summary timing fields and the human description."""
    reconciler = ImportReconciler(InMemoryHealthRecordRepository(), ImporterConfig())

    summary = reconciler.reconcile("u1", make_batch("2024-03-01"), InsertMode.NEW)

    if summary.started_at is None or summary.finished_at is None:
        raise AssertionError("Expected start and finish timestamps")
    if summary.finished_at < summary.started_at:
        raise AssertionError("Expected finish after start")
    if summary.describe() != "1 added, 0 replaced, 0 skipped":
        raise AssertionError(f"Unexpected description: {summary.describe()}")


def test_skipped_write_not_left_in_json_store(tmp_path: Path) -> None:
    """Test that an entry counted as skipped is not stored after a failed file write."""
    path = tmp_path / "records.json"
    repo = JsonFileHealthRecordRepository(path)
    reconciler = ImportReconciler(repo, ImporterConfig())
    path.mkdir()

    summary = reconciler.reconcile("u1", make_batch("2024-01-01", mood=5), InsertMode.MERGE)

    if (summary.added, summary.replaced, summary.skipped) != (0, 0, 1):
        raise AssertionError(f"Expected 0/0/1, got {summary.describe()}")
    if repo.get("u1", "2024-01-01") is not None:
        raise AssertionError("Expected skipped entry to be absent from the store")


def test_progress_total_includes_planned_skips() -> None:
    """Test that new-mode skips count toward progress so it ends at the batch size."""
    repo = InMemoryHealthRecordRepository(existing_records("2024-03-01"))
    reconciler = ImportReconciler(repo, ImporterConfig())
    progress: list[tuple[int, int]] = []

    reconciler.reconcile(
        "u1",
        make_batch("2024-03-01", "2024-03-02", "2024-03-03"),
        InsertMode.NEW,
        progress_callback=lambda done, total: progress.append((done, total)),
    )

    if progress != [(1, 3), (2, 3), (3, 3)]:
        raise AssertionError(f"Unexpected progress: {progress}")
