"""
Import reconciliation service.

Reconciles a validated batch against a user's existing records under one of
three insert modes and applies the resulting operations to the record store.
Writes are best-effort: a failed write is counted as skipped and the import
continues.
"""

import logging
from collections.abc import Callable, Collection

from health_metrics_tracker.domain.health_record import ImportBatch, InsertMode
from health_metrics_tracker.domain.import_result import (
    EntryFailure,
    ImportSummary,
    OperationKind,
    Outcome,
    PersistenceOperation,
    ReconciliationPlan,
)
from health_metrics_tracker.infrastructure.storage.record_store import HealthRecordRepository
from health_metrics_tracker.utils.exceptions import PersistenceError, ReconciliationError
from health_metrics_tracker.utils.parameters import ImporterConfig
from health_metrics_tracker.utils.timezone_utils import now_in_timezone

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


def _chunks(items: list, size: int) -> list[list]:
    return [items[i : i + size] for i in range(0, len(items), size)]


class ImportReconciler:
    """
    Service for applying an import batch to the health record store.

    The caller declares the insert mode up front, so added and replaced
    counts come from the plan rather than from inspecting the store after
    each write.
    """

    def __init__(
        self,
        repository: HealthRecordRepository,
        config: ImporterConfig,
        timezone: str = "UTC",
    ) -> None:
        """
        Initialize import reconciler.

        Args:
            repository: Health record store.
            config: Import pipeline configuration.
            timezone: Timezone for summary timestamps.
        """
        self.repository = repository
        self.config = config
        self.timezone = timezone

    def plan(
        self,
        batch: ImportBatch,
        insert_mode: InsertMode,
        existing_dates: Collection[str],
    ) -> ReconciliationPlan:
        """
        Compute the operations for an import without touching the store.

        Args:
            batch: Validated import batch.
            insert_mode: merge, overwrite or new.
            existing_dates: Dates the user already has records for.

        Returns:
            Reconciliation plan.
        """
        insert_mode = InsertMode(insert_mode)
        existing = set(existing_dates)
        plan = ReconciliationPlan(insert_mode=insert_mode)

        if insert_mode == InsertMode.OVERWRITE:
            for dates in _chunks(batch.dates, self.config.chunk_size):
                plan.deletes.append(PersistenceOperation(kind=OperationKind.DELETE, dates=dates))

        for entry in batch.entries:
            if insert_mode == InsertMode.MERGE:
                outcome = Outcome.REPLACED if entry.date in existing else Outcome.ADDED
                plan.writes.append(
                    PersistenceOperation(kind=OperationKind.UPSERT, entry=entry, outcome=outcome)
                )
            elif insert_mode == InsertMode.OVERWRITE:
                plan.writes.append(
                    PersistenceOperation(kind=OperationKind.INSERT, entry=entry, outcome=Outcome.ADDED)
                )
            elif entry.date in existing:
                plan.skipped.append(entry.date)
            else:
                plan.writes.append(
                    PersistenceOperation(kind=OperationKind.INSERT, entry=entry, outcome=Outcome.ADDED)
                )

        logger.debug(
            f"Planned {insert_mode.value} import: {len(plan.deletes)} deletes, "
            f"{len(plan.writes)} writes, {len(plan.skipped)} skipped"
        )
        return plan

    def _apply_write(self, user_id: str, operation: PersistenceOperation) -> None:
        entry = operation.entry
        if entry is None:
            raise ValueError(f"{operation.kind.value} operation without an entry")

        if operation.kind == OperationKind.UPSERT:
            self.repository.upsert(user_id, entry.date, entry.metrics())
        else:
            self.repository.insert(user_id, entry)

    def execute(
        self,
        user_id: str,
        plan: ReconciliationPlan,
        progress_callback: ProgressCallback | None = None,
    ) -> ImportSummary:
        """
        Apply a plan to the record store.

        Args:
            user_id: Owner of the records.
            plan: Plan produced by plan().
            progress_callback: Called with (done, total) after each write, where
                total is the number of batch entries. Entries skipped by the
                plan are reported once, before the first write.

        Returns:
            Import summary.

        Raises:
            ReconciliationError: If the delete phase of an overwrite fails.
        """
        summary = ImportSummary(
            insert_mode=plan.insert_mode,
            skipped=len(plan.skipped),
            started_at=now_in_timezone(self.timezone),
        )

        for operation in plan.deletes:
            try:
                removed = self.repository.delete_where(user_id, operation.dates)
            except PersistenceError as e:
                raise ReconciliationError(f"Failed to delete existing records: {e}") from e
            logger.info(f"Deleted {removed} existing records for {len(operation.dates)} dates")

        # entries skipped by the plan count as done before the first write
        total = len(plan.writes) + len(plan.skipped)
        done = len(plan.skipped)
        if done and progress_callback is not None:
            progress_callback(done, total)

        for chunk_number, chunk in enumerate(_chunks(plan.writes, self.config.chunk_size), start=1):
            for operation in chunk:
                try:
                    self._apply_write(user_id, operation)
                except PersistenceError as e:
                    date = operation.entry.date if operation.entry else "?"
                    logger.warning(f"Failed to write record for {date}: {e}")
                    summary.skipped += 1
                    summary.failures.append(EntryFailure(date=date, cause=str(e)))
                else:
                    if operation.outcome == Outcome.REPLACED:
                        summary.replaced += 1
                    else:
                        summary.added += 1

                done += 1
                if progress_callback is not None:
                    progress_callback(done, total)

            logger.debug(f"Wrote chunk {chunk_number} ({done}/{total})")

        summary.finished_at = now_in_timezone(self.timezone)
        logger.info(f"Import finished ({plan.insert_mode.value}): {summary.describe()}")
        return summary

    def reconcile(
        self,
        user_id: str,
        batch: ImportBatch,
        insert_mode: InsertMode,
        progress_callback: ProgressCallback | None = None,
    ) -> ImportSummary:
        """
        Reconcile a batch against the user's stored records.

        Args:
            user_id: Owner of the records.
            batch: Validated import batch.
            insert_mode: merge, overwrite or new.
            progress_callback: Called with (done, total) as entries are processed.

        Returns:
            Import summary with added, replaced and skipped counts.

        Raises:
            ReconciliationError: If existing records cannot be read or the
                delete phase of an overwrite fails.
        """
        try:
            existing = self.repository.list_by_user(user_id)
        except PersistenceError as e:
            raise ReconciliationError(f"Failed to read existing records: {e}") from e

        plan = self.plan(batch, insert_mode, {record.date for record in existing})
        return self.execute(user_id, plan, progress_callback)
