"""Custom exceptions for the health metrics tracker."""


class HealthTrackerError(Exception):
    """Base exception for all health metrics tracker errors."""

    pass


class ConfigurationError(HealthTrackerError):
    """Raised when there is a configuration error."""

    pass


class ParseError(HealthTrackerError):
    """Raised when a CSV file has no header and data lines."""

    pass


class FormatError(HealthTrackerError):
    """Raised when a cell cannot be read as a finite number."""

    def __init__(self, field_label: str, raw_value: str) -> None:
        self.field_label = field_label
        self.raw_value = raw_value
        super().__init__(f"{field_label}: invalid number '{raw_value}'")


class MappingIncompleteError(HealthTrackerError):
    """Raised when required fields have no mapped CSV column."""

    def __init__(self, missing_fields: list[str]) -> None:
        self.missing_fields = list(missing_fields)
        super().__init__(f"Unmapped required fields: {', '.join(self.missing_fields)}")


class NoValidDataError(HealthTrackerError):
    """Raised when no row of an import survives validation."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__(f"No valid data to import ({len(self.errors)} rows rejected)")


class PersistenceError(HealthTrackerError):
    """Raised when a health record store operation fails."""

    pass


class ReconciliationError(HealthTrackerError):
    """Raised when an import cannot proceed against the record store."""

    pass


class WizardStateError(HealthTrackerError):
    """Raised when an import wizard step is invoked from the wrong state."""

    pass
