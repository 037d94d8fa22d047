"""
Tabular and mapping models for the CSV import pipeline.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

# Internal field key -> CSV header. Absent keys are unmapped.
ColumnMapping = dict[str, str]


class RawTable(BaseModel):
    """
    Header row and data rows of a parsed CSV file.

    Every row has exactly one cell per header. Built once per uploaded file.
    """

    headers: tuple[str, ...]
    rows: tuple[tuple[str, ...], ...] = ()
    dropped_rows: int = Field(0, description="Malformed lines removed during parsing")

    model_config = ConfigDict(frozen=True)

    def column_index(self, header: str) -> int | None:
        """Return the position of the first column with this header."""
        try:
            return self.headers.index(header)
        except ValueError:
            return None


class SavedMapping(BaseModel):
    """A named column mapping remembered for reuse on similar files."""

    id: str
    name: str
    mapping: ColumnMapping
    headers: list[str]
    created_at: datetime

    model_config = ConfigDict(frozen=True)
