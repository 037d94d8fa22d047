"""
Command-line interface for Health Metrics Tracker.

Provides commands for previewing, importing and exporting CSV health data
and for managing saved column mappings.
"""

from pathlib import Path

import typer

from health_metrics_tracker.domain.health_record import FIELD_ORDER, ImportBatch, InsertMode
from health_metrics_tracker.infrastructure.parsers.csv_parser import CSVParser
from health_metrics_tracker.infrastructure.storage.mapping_store import (
    JsonFileMappingRepository,
    MappingStore,
)
from health_metrics_tracker.infrastructure.storage.record_store import (
    JsonFileHealthRecordRepository,
)
from health_metrics_tracker.services.export import BatchExporter, ImportLogWriter
from health_metrics_tracker.services.reconciler import ImportReconciler
from health_metrics_tracker.services.transformer import RowTransformer
from health_metrics_tracker.services.wizard import ImportWizard
from health_metrics_tracker.utils.exceptions import HealthTrackerError
from health_metrics_tracker.utils.hashing import compute_text_hash
from health_metrics_tracker.utils.logging_config import get_logger, setup_logging
from health_metrics_tracker.utils.parameters import ParameterLoader

app = typer.Typer(help="Health Metrics Tracker - CSV import of daily health metrics")
mappings_app = typer.Typer(help="Manage saved column mappings")
app.add_typer(mappings_app, name="mappings")

logger = get_logger(__name__)


def init_config(config_path: str = "config/config.yaml") -> ParameterLoader:
    """
    Initialize configuration and logging.

    Args:
        config_path: Path to configuration file.

    Returns:
        Parameter loader instance.
    """
    param_loader = ParameterLoader(config_path)
    setup_logging(param_loader.get_logging_config(), "health_metrics_tracker")
    return param_loader


def build_mapping_store(param_loader: ParameterLoader) -> MappingStore:
    """Create the mapping store configured for this installation."""
    return MappingStore(
        JsonFileMappingRepository(param_loader.get_storage_config().mappings_file),
        similarity_threshold=param_loader.get_importer_config().similarity_threshold,
        timezone=param_loader.get_processing_config().timezone,
    )


def build_wizard(param_loader: ParameterLoader, source: str | None = None) -> ImportWizard:
    """
    Wire an import wizard from configuration.

    Args:
        param_loader: Loaded configuration.
        source: Label of the imported file, recorded in the import log.

    Returns:
        Import wizard at SELECT_FILE.
    """
    importer_config = param_loader.get_importer_config()
    storage_config = param_loader.get_storage_config()
    timezone = param_loader.get_processing_config().timezone

    hooks = []
    if storage_config.import_log:
        hooks.append(ImportLogWriter(Path(storage_config.import_log), source))

    return ImportWizard(
        parser=CSVParser(),
        transformer=RowTransformer(),
        mapping_store=build_mapping_store(param_loader),
        reconciler=ImportReconciler(
            JsonFileHealthRecordRepository(storage_config.records_file),
            importer_config,
            timezone=timezone,
        ),
        post_import_hooks=hooks,
        default_insert_mode=InsertMode(importer_config.default_insert_mode),
        max_error_samples=importer_config.max_error_samples,
    )


def read_csv_file(file_path: Path) -> str:
    """
    Read a CSV file as text.

    Raises:
        HealthTrackerError: If the file cannot be read.
    """
    try:
        return file_path.read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as e:
        raise HealthTrackerError(f"Failed to read {file_path}: {e}") from e


def parse_mapping_options(options: list[str]) -> dict[str, str]:
    """
    Parse repeated --map field=header options.

    Raises:
        typer.BadParameter: For malformed options or unknown fields.
    """
    mapping: dict[str, str] = {}
    for option in options:
        field, sep, header = option.partition("=")
        field = field.strip()
        if not sep or not header.strip():
            raise typer.BadParameter(f"Expected field=header, got '{option}'")
        if field not in FIELD_ORDER:
            raise typer.BadParameter(
                f"Unknown field '{field}', expected one of: {', '.join(FIELD_ORDER)}"
            )
        mapping[field] = header.strip()
    return mapping


def prepare_batch(
    wizard: ImportWizard,
    text: str,
    file_name: str,
    map_options: list[str],
    mapping_id: str | None = None,
    save_mapping: str | None = None,
) -> ImportBatch:
    """
    Drive the wizard from file selection through validation.

    Explicit --map options override the suggested or saved mapping.
    """
    wizard.select_file(text, file_name)

    if mapping_id:
        try:
            saved = wizard.apply_saved_mapping(mapping_id)
        except KeyError as e:
            raise HealthTrackerError(f"Saved mapping not found: {mapping_id}") from e
        typer.echo(f"Using saved mapping '{saved.name}'")
    elif wizard.suggested_mapping is not None:
        typer.echo(f"Using similar saved mapping '{wizard.suggested_mapping.name}'")

    for field, header in parse_mapping_options(map_options).items():
        try:
            wizard.set_mapping(field, header)
        except ValueError as e:
            raise typer.BadParameter(str(e)) from e

    for field in FIELD_ORDER:
        typer.echo(f"  {field:<17} <- {wizard.mapping.get(field, '(unmapped)')}")

    if save_mapping:
        saved = wizard.save_mapping(save_mapping)
        typer.echo(f"Saved mapping '{saved.name}' ({saved.id})")

    batch = wizard.validate()
    typer.echo(
        f"Validated {batch.total_rows} rows: {len(batch.entries)} valid, "
        f"{len(batch.errors)} rejected, {batch.duplicates_dropped} duplicate dates dropped"
    )
    if wizard.table is not None and wizard.table.dropped_rows:
        typer.echo(f"Dropped {wizard.table.dropped_rows} malformed lines")
    return batch


@app.command()
def preview(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="CSV file to preview"),
    config_path: str = typer.Option("config/config.yaml", help="Path to configuration file"),
    map_options: list[str] = typer.Option([], "--map", help="Column mapping as field=header"),
    mapping_id: str | None = typer.Option(None, help="Saved mapping to apply"),
) -> None:
    """
    Validate a CSV file and show what an import would contain.

    Nothing is written to the health record store.
    """
    try:
        param_loader = init_config(config_path)
        wizard = build_wizard(param_loader)
        batch = prepare_batch(wizard, read_csv_file(file), file.name, map_options, mapping_id)

        result = wizard.preview()
        typer.echo(f"\nDates: {result.date_from} .. {result.date_to}")
        for name, stats in result.fields.items():
            typer.echo(
                f"  {name:<17} n={stats.count:<5} mean={stats.mean} "
                f"min={stats.minimum} max={stats.maximum}"
            )

        for message in batch.errors[: param_loader.get_importer_config().max_error_samples]:
            typer.echo(f"  {message}", err=True)

    except HealthTrackerError as e:
        logger.error(f"Preview failed: {e}")
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e


@app.command("import")
def import_csv(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="CSV file to import"),
    user_id: str = typer.Option(..., help="Owner of the imported records"),
    mode: InsertMode | None = typer.Option(None, help="Insert mode (default from config)"),
    config_path: str = typer.Option("config/config.yaml", help="Path to configuration file"),
    map_options: list[str] = typer.Option([], "--map", help="Column mapping as field=header"),
    mapping_id: str | None = typer.Option(None, help="Saved mapping to apply"),
    save_mapping: str | None = typer.Option(None, help="Save the mapping under this name"),
) -> None:
    """
    Import a CSV file into a user's health records.

    Rows that fail validation are reported and left out; entries whose
    write fails are counted as skipped.
    """
    try:
        param_loader = init_config(config_path)
        text = read_csv_file(file)
        logger.info(f"Importing {file.name} (md5 {compute_text_hash(text)})")

        wizard = build_wizard(param_loader, source=file.name)
        batch = prepare_batch(wizard, text, file.name, map_options, mapping_id, save_mapping)

        if mode is not None:
            wizard.choose_mode(mode)

        reported = 0
        with typer.progressbar(length=len(batch.entries), label="Importing") as progress:

            def advance(done: int, total: int) -> None:
                nonlocal reported
                progress.update(done - reported)
                reported = done

            summary = wizard.run_import(user_id, advance)

        typer.echo(f"Import complete ({summary.insert_mode.value}): {summary.describe()}")
        for failure in summary.failures:
            typer.echo(f"  {failure.date}: {failure.cause}", err=True)

    except HealthTrackerError as e:
        logger.error(f"Import failed: {e}")
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e


@app.command()
def export(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="CSV file to clean"),
    output: Path = typer.Option(..., help="Destination CSV file"),
    config_path: str = typer.Option("config/config.yaml", help="Path to configuration file"),
    map_options: list[str] = typer.Option([], "--map", help="Column mapping as field=header"),
    mapping_id: str | None = typer.Option(None, help="Saved mapping to apply"),
) -> None:
    """
    Validate a CSV file and write the clean rows in canonical column order.
    """
    try:
        param_loader = init_config(config_path)
        wizard = build_wizard(param_loader)
        batch = prepare_batch(wizard, read_csv_file(file), file.name, map_options, mapping_id)

        BatchExporter().write_batch(batch, output)
        typer.echo(f"Wrote {len(batch.entries)} entries to {output}")

    except HealthTrackerError as e:
        logger.error(f"Export failed: {e}")
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e


@mappings_app.command("list")
def list_mappings(
    config_path: str = typer.Option("config/config.yaml", help="Path to configuration file"),
) -> None:
    """List saved column mappings, oldest first."""
    try:
        store = build_mapping_store(init_config(config_path))
        saved_mappings = store.list_all()
        if not saved_mappings:
            typer.echo("No saved mappings")
            return

        for saved in saved_mappings:
            typer.echo(f"{saved.id}  {saved.name}  ({saved.created_at.isoformat()})")
            for field, header in saved.mapping.items():
                typer.echo(f"    {field:<17} <- {header}")

    except HealthTrackerError as e:
        logger.error(f"Listing mappings failed: {e}")
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e


@mappings_app.command("delete")
def delete_mapping(
    mapping_id: str = typer.Argument(..., help="Id of the mapping to delete"),
    config_path: str = typer.Option("config/config.yaml", help="Path to configuration file"),
) -> None:
    """Delete a saved column mapping."""
    try:
        store = build_mapping_store(init_config(config_path))
        if not store.delete(mapping_id):
            typer.echo(f"Error: saved mapping not found: {mapping_id}", err=True)
            raise typer.Exit(code=1)
        typer.echo(f"Deleted mapping {mapping_id}")

    except HealthTrackerError as e:
        logger.error(f"Deleting mapping failed: {e}")
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e


if __name__ == "__main__":
    app()
