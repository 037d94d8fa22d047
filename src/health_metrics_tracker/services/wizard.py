"""
CSV import wizard.

Sequences parsing, column mapping, validation and reconciliation as a step
state machine:

    SELECT_FILE -> MAP_COLUMNS -> REVIEW_AND_CHOOSE_MODE -> PROCESSING -> DONE

A reconciliation failure returns from PROCESSING to REVIEW_AND_CHOOSE_MODE,
and reset() returns from any step to SELECT_FILE.
"""

import logging
from collections.abc import Callable
from enum import Enum

from health_metrics_tracker.domain.csv_table import ColumnMapping, RawTable, SavedMapping
from health_metrics_tracker.domain.health_record import FIELD_ORDER, ImportBatch, InsertMode
from health_metrics_tracker.domain.import_result import ImportSummary
from health_metrics_tracker.infrastructure.parsers.csv_parser import CSVParser
from health_metrics_tracker.infrastructure.storage.mapping_store import MappingStore
from health_metrics_tracker.services.preview import BatchPreview, PreviewService
from health_metrics_tracker.services.reconciler import ImportReconciler, ProgressCallback
from health_metrics_tracker.services.transformer import RowTransformer, auto_detect, missing_fields
from health_metrics_tracker.utils.exceptions import (
    MappingIncompleteError,
    NoValidDataError,
    ReconciliationError,
    WizardStateError,
)
from health_metrics_tracker.utils.logging_config import log_error_samples

logger = logging.getLogger(__name__)

PostImportHook = Callable[[ImportSummary], None]


class WizardStep(str, Enum):
    """Steps of the import wizard."""

    SELECT_FILE = "select_file"
    MAP_COLUMNS = "map_columns"
    REVIEW_AND_CHOOSE_MODE = "review_and_choose_mode"
    PROCESSING = "processing"
    DONE = "done"


class ImportWizard:
    """
    Step-by-step CSV import for one user session.

    All collaborators are injected; the wizard holds only the state of the
    import in progress.
    """

    def __init__(
        self,
        parser: CSVParser,
        transformer: RowTransformer,
        mapping_store: MappingStore,
        reconciler: ImportReconciler,
        preview_service: PreviewService | None = None,
        post_import_hooks: list[PostImportHook] | None = None,
        default_insert_mode: InsertMode = InsertMode.MERGE,
        max_error_samples: int = 10,
    ) -> None:
        """
        Initialize import wizard.

        Args:
            parser: CSV parser.
            transformer: Row validator and transformer.
            mapping_store: Saved column mappings.
            reconciler: Applies batches to the record store.
            preview_service: Computes the review-step preview.
            post_import_hooks: Side effects run after a successful import.
                Their failures are logged and never fail the import.
            default_insert_mode: Insert mode preselected at review.
            max_error_samples: How many row errors to log per validation.
        """
        self.parser = parser
        self.transformer = transformer
        self.mapping_store = mapping_store
        self.reconciler = reconciler
        self.preview_service = preview_service or PreviewService()
        self.post_import_hooks = list(post_import_hooks or [])
        self.default_insert_mode = InsertMode(default_insert_mode)
        self.max_error_samples = max_error_samples
        self._clear()

    def _clear(self) -> None:
        self.step = WizardStep.SELECT_FILE
        self.file_name: str | None = None
        self.table: RawTable | None = None
        self.mapping: ColumnMapping = {}
        self.suggested_mapping: SavedMapping | None = None
        self.batch: ImportBatch | None = None
        self.insert_mode = self.default_insert_mode
        self.summary: ImportSummary | None = None
        self.last_error: str | None = None
        self.progress: tuple[int, int] = (0, 0)

    def _require(self, *steps: WizardStep) -> None:
        if self.step not in steps:
            expected = ", ".join(s.value for s in steps)
            raise WizardStateError(f"Expected step {expected}, wizard is at {self.step.value}")

    def _move(self, step: WizardStep) -> None:
        logger.debug(f"Wizard: {self.step.value} -> {step.value}")
        self.step = step

    @property
    def headers(self) -> tuple[str, ...]:
        """Headers of the selected file."""
        return self.table.headers if self.table else ()

    def select_file(self, text: str, file_name: str | None = None) -> RawTable:
        """
        Parse an uploaded file and prefill the column mapping.

        The mapping comes from the first similar saved mapping, otherwise
        from header auto-detection.

        Args:
            text: File contents.
            file_name: Original file name, for logging.

        Returns:
            Parsed table.

        Raises:
            ParseError: If the file has no data; the wizard stays at SELECT_FILE.
        """
        self._require(WizardStep.SELECT_FILE)

        table = self.parser.parse(text)
        self.file_name = file_name
        self.table = table

        similar = self.mapping_store.find_similar(table.headers)
        self.suggested_mapping = similar
        if similar is not None:
            self.mapping = {k: v for k, v in similar.mapping.items() if v in table.headers}
        else:
            self.mapping = auto_detect(table.headers)

        logger.info(f"Selected {file_name or 'file'} with {len(table.rows)} rows")
        self._move(WizardStep.MAP_COLUMNS)
        return table

    def set_mapping(self, field: str, header: str | None) -> None:
        """
        Map a field to a header, or unmap it with None.

        Raises:
            WizardStateError: Outside MAP_COLUMNS.
            ValueError: For an unknown field or header.
        """
        self._require(WizardStep.MAP_COLUMNS)
        if field not in FIELD_ORDER:
            raise ValueError(f"Unknown field: {field}")

        if header is None:
            self.mapping.pop(field, None)
            return
        if header not in self.headers:
            raise ValueError(f"Unknown header: {header}")
        self.mapping[field] = header

    def apply_saved_mapping(self, mapping_id: str) -> SavedMapping:
        """
        Replace the current mapping with a saved one.

        Raises:
            WizardStateError: Outside MAP_COLUMNS.
            KeyError: If no mapping has this id.
        """
        self._require(WizardStep.MAP_COLUMNS)
        saved = self.mapping_store.find(mapping_id)
        if saved is None:
            raise KeyError(f"Saved mapping not found: {mapping_id}")

        self.mapping = {k: v for k, v in saved.mapping.items() if v in self.headers}
        return saved

    def save_mapping(self, name: str) -> SavedMapping:
        """
        Save the current mapping under a name.

        Raises:
            WizardStateError: Outside MAP_COLUMNS.
            ValueError: If nothing is mapped.
        """
        self._require(WizardStep.MAP_COLUMNS)
        if not self.mapping:
            raise ValueError("No column mappings to save")
        return self.mapping_store.save(name, self.mapping, self.headers)

    def missing_fields(self) -> list[str]:
        """Fields still without a column."""
        return missing_fields(self.mapping, self.headers)

    def validate(self) -> ImportBatch:
        """
        Transform the table with the current mapping and move to review.

        Row errors are kept on the batch; the step only fails when the
        mapping is incomplete or no row is valid.

        Returns:
            Validated batch.

        Raises:
            MappingIncompleteError: If a field is unmapped.
            NoValidDataError: If no row survives validation.
        """
        self._require(WizardStep.MAP_COLUMNS)

        try:
            batch = self.transformer.transform(self.table, self.mapping)
        except MappingIncompleteError as e:
            self.last_error = str(e)
            raise

        log_error_samples(logger, "rows rejected", batch.errors, self.max_error_samples)
        if batch.is_empty:
            self.last_error = "No valid data"
            raise NoValidDataError(batch.errors)

        self.batch = batch
        self.last_error = None
        self._move(WizardStep.REVIEW_AND_CHOOSE_MODE)
        return batch

    def preview(self) -> BatchPreview:
        """Preview of the validated batch."""
        self._require(WizardStep.REVIEW_AND_CHOOSE_MODE)
        return self.preview_service.summarize(self.batch)

    def back(self) -> None:
        """Return from review to column mapping."""
        self._require(WizardStep.REVIEW_AND_CHOOSE_MODE)
        self.batch = None
        self._move(WizardStep.MAP_COLUMNS)

    def choose_mode(self, insert_mode: InsertMode | str) -> None:
        """Select merge, overwrite or new for the import."""
        self._require(WizardStep.REVIEW_AND_CHOOSE_MODE)
        self.insert_mode = InsertMode(insert_mode)

    def run_import(
        self, user_id: str, progress_callback: ProgressCallback | None = None
    ) -> ImportSummary:
        """
        Reconcile the batch into the user's records.

        Args:
            user_id: Owner of the records.
            progress_callback: Also notified with (done, total) as entries are
                processed; total is the number of batch entries.

        Returns:
            Import summary.

        Raises:
            ReconciliationError: The wizard returns to REVIEW_AND_CHOOSE_MODE.
        """
        self._require(WizardStep.REVIEW_AND_CHOOSE_MODE)

        def track_progress(done: int, total: int) -> None:
            self.progress = (done, total)
            if progress_callback is not None:
                progress_callback(done, total)

        self._move(WizardStep.PROCESSING)
        self.progress = (0, len(self.batch.entries))
        try:
            summary = self.reconciler.reconcile(
                user_id, self.batch, self.insert_mode, progress_callback=track_progress
            )
        except ReconciliationError as e:
            logger.error(f"Import failed: {e}")
            self.last_error = str(e)
            self._move(WizardStep.REVIEW_AND_CHOOSE_MODE)
            raise

        self.summary = summary
        self.last_error = None
        log_error_samples(
            logger,
            "entries failed to save",
            [f"{f.date}: {f.cause}" for f in summary.failures],
            self.max_error_samples,
        )
        self._move(WizardStep.DONE)
        self._run_post_import_hooks(summary)
        return summary

    def _run_post_import_hooks(self, summary: ImportSummary) -> None:
        for hook in self.post_import_hooks:
            try:
                hook(summary)
            except Exception as e:
                logger.warning(f"Post-import hook {getattr(hook, '__name__', hook)!r} failed: {e}")

    def reset(self) -> None:
        """Discard the current import and start over."""
        self._require(
            WizardStep.SELECT_FILE,
            WizardStep.MAP_COLUMNS,
            WizardStep.REVIEW_AND_CHOOSE_MODE,
            WizardStep.DONE,
        )
        self._clear()
