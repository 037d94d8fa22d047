"""
Saved column mapping registry.

Keeps named column mappings in a local key-value repository and suggests a
previously saved mapping for a newly uploaded file with similar headers.
"""

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from health_metrics_tracker.domain.csv_table import ColumnMapping, SavedMapping
from health_metrics_tracker.utils.exceptions import PersistenceError
from health_metrics_tracker.utils.hashing import generate_mapping_id
from health_metrics_tracker.utils.timezone_utils import now_in_timezone

logger = logging.getLogger(__name__)

_MAPPING_LIST = TypeAdapter(list[SavedMapping])


class MappingRepository(ABC):
    """Whole-collection storage for saved mappings."""

    @abstractmethod
    def load_all(self) -> list[SavedMapping]:
        """Return every stored mapping in creation order."""

    @abstractmethod
    def save_all(self, mappings: list[SavedMapping]) -> None:
        """Replace the stored collection."""


class InMemoryMappingRepository(MappingRepository):
    """Mapping repository held in process memory."""

    def __init__(self, mappings: list[SavedMapping] | None = None) -> None:
        self._mappings = list(mappings or [])

    def load_all(self) -> list[SavedMapping]:
        return list(self._mappings)

    def save_all(self, mappings: list[SavedMapping]) -> None:
        self._mappings = list(mappings)


class JsonFileMappingRepository(MappingRepository):
    """
    Mapping repository backed by a single JSON file.

    A missing file reads as an empty collection. An unreadable file is
    logged and also read as empty, so a corrupt registry never blocks an
    import.
    """

    def __init__(self, path: str | Path) -> None:
        """
        Initialize JSON mapping repository.

        Args:
            path: Location of the JSON file.
        """
        self.path = Path(path)

    def load_all(self) -> list[SavedMapping]:
        if not self.path.exists():
            return []

        try:
            with open(self.path, encoding="utf-8") as f:
                return _MAPPING_LIST.validate_python(json.load(f))
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Failed to load saved mappings from {self.path}: {e}")
            return []

    def save_all(self, mappings: list[SavedMapping]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                f.write(_MAPPING_LIST.dump_json(mappings, indent=2).decode("utf-8"))
            logger.debug(f"Saved {len(mappings)} mappings to {self.path}")
        except OSError as e:
            raise PersistenceError(f"Failed to save mappings to {self.path}: {e}") from e


def header_similarity(headers: Sequence[str], other: Sequence[str]) -> float:
    """
    Overlap ratio of two header lists.

    Headers are compared as sets: a header repeated in either list counts
    once toward the overlap, while the denominator uses the full list
    lengths, so duplicate columns lower the score.

    Args:
        headers: Headers of the new file.
        other: Headers a mapping was saved with.

    Returns:
        |common headers| / max(len(headers), len(other)), or 0.0 when both are empty.
    """
    longest = max(len(headers), len(other))
    if longest == 0:
        return 0.0
    return len(set(headers) & set(other)) / longest


class MappingStore:
    """
    Registry of named column mappings.

    Entries are never mutated: saving under an existing name removes the old
    entry and appends a new one, so the collection stays in creation order.
    """

    def __init__(
        self,
        repository: MappingRepository,
        similarity_threshold: float = 0.7,
        timezone: str = "UTC",
    ) -> None:
        """
        Initialize mapping store.

        Args:
            repository: Backing storage for the collection.
            similarity_threshold: Minimum header overlap for find_similar.
            timezone: Timezone for creation timestamps.
        """
        self.repository = repository
        self.similarity_threshold = similarity_threshold
        self.timezone = timezone
        self._mappings = repository.load_all()

    def list_all(self) -> list[SavedMapping]:
        """Return all saved mappings, oldest first."""
        return list(self._mappings)

    def save(self, name: str, mapping: ColumnMapping, headers: Sequence[str]) -> SavedMapping:
        """
        Save a mapping under a name, replacing any entry with the same name.

        Args:
            name: Mapping name.
            mapping: Field key to header mapping.
            headers: Headers of the file the mapping was built for.

        Returns:
            The newly stored mapping.
        """
        created_at = now_in_timezone(self.timezone)
        saved = SavedMapping(
            id=generate_mapping_id(name, created_at),
            name=name,
            mapping=dict(mapping),
            headers=list(headers),
            created_at=created_at,
        )

        replaced = [m for m in self._mappings if m.name == name]
        self._mappings = [m for m in self._mappings if m.name != name] + [saved]
        self.repository.save_all(self._mappings)

        if replaced:
            logger.info(f"Replaced saved mapping '{name}'")
        else:
            logger.info(f"Saved mapping '{name}'")
        return saved

    def find(self, mapping_id: str) -> SavedMapping | None:
        """Return the mapping with this id, if any."""
        for saved in self._mappings:
            if saved.id == mapping_id:
                return saved
        return None

    def delete(self, mapping_id: str) -> bool:
        """
        Delete a saved mapping.

        Args:
            mapping_id: Id of the mapping to delete.

        Returns:
            True if a mapping was deleted.
        """
        remaining = [m for m in self._mappings if m.id != mapping_id]
        if len(remaining) == len(self._mappings):
            return False

        self._mappings = remaining
        self.repository.save_all(self._mappings)
        logger.info(f"Deleted saved mapping {mapping_id}")
        return True

    def find_similar(self, headers: Sequence[str]) -> SavedMapping | None:
        """
        Suggest a saved mapping for a file with these headers.

        Heuristic: the first mapping, in creation order, whose header
        overlap reaches the similarity threshold.

        Args:
            headers: Headers of the new file.

        Returns:
            Matching mapping, or None.
        """
        for saved in self._mappings:
            similarity = header_similarity(headers, saved.headers)
            if similarity >= self.similarity_threshold:
                logger.info(f"Found similar mapping '{saved.name}' ({similarity:.0%} header overlap)")
                return saved
        return None
