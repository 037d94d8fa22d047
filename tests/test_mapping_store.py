"""Unit tests for saved mapping store."""

import json
from pathlib import Path

from health_metrics_tracker.infrastructure.storage.mapping_store import (
    InMemoryMappingRepository,
    JsonFileMappingRepository,
    MappingStore,
    header_similarity,
)

HEADERS = ["Date", "Mood", "Energy", "Sleep", "Exercise", "Stress", "Water"]
MAPPING = {
    "date": "Date",
    "mood": "Mood",
    "energy": "Energy",
    "sleep_hours": "Sleep",
    "exercise_minutes": "Exercise",
    "stress_level": "Stress",
    "water_intake": "Water",
}


def test_save_and_find() -> None:
    """Test that a saved mapping can be found by id."""
    store = MappingStore(InMemoryMappingRepository())

    saved = store.save("Daylio export", MAPPING, HEADERS)

    found = store.find(saved.id)
    if found is None or found.name != "Daylio export":
        raise AssertionError(f"Expected to find 'Daylio export', got {found}")
    if found.mapping != MAPPING:
        raise AssertionError(f"Unexpected mapping: {found.mapping}")
    if found.created_at.tzinfo is None:
        raise AssertionError("Expected timezone-aware creation timestamp")


def test_save_same_name_replaces_entry() -> None:
    """Test that saving under an existing name keeps a single entry at the end."""
    store = MappingStore(InMemoryMappingRepository())
    store.save("Phone", MAPPING, HEADERS)
    store.save("Watch", MAPPING, HEADERS)

    replacement = store.save("Phone", dict(MAPPING, mood="Energy"), HEADERS)

    names = [m.name for m in store.list_all()]
    if names != ["Watch", "Phone"]:
        raise AssertionError(f"Expected ['Watch', 'Phone'], got {names}")
    if store.list_all()[-1].id != replacement.id:
        raise AssertionError("Expected replacement to be the newest entry")


def test_delete() -> None:
    """Test deleting existing and unknown mappings."""
    store = MappingStore(InMemoryMappingRepository())
    saved = store.save("Phone", MAPPING, HEADERS)

    if store.delete("unknown"):
        raise AssertionError("Expected delete of unknown id to return False")
    if not store.delete(saved.id):
        raise AssertionError("Expected delete to return True")
    if store.list_all():
        raise AssertionError(f"Expected no mappings, got {store.list_all()}")


def test_header_similarity() -> None:
    """Test header overlap ratio."""
    if header_similarity(HEADERS, HEADERS) != 1.0:
        raise AssertionError("Expected identical headers to have similarity 1.0")
    if header_similarity([], []) != 0.0:
        raise AssertionError("Expected empty headers to have similarity 0.0")

    ratio = header_similarity(HEADERS[:4], HEADERS)
    if abs(ratio - 4 / 7) > 1e-9:
        raise AssertionError(f"Expected 4/7, got {ratio}")


def test_header_similarity_counts_repeated_headers_once() -> None:
    """Test that a duplicated column adds nothing to the overlap but lengthens the list."""
    ratio = header_similarity(["Date", "Date", "Mood"], ["Date", "Mood", "Energy"])

    if abs(ratio - 2 / 3) > 1e-9:
        raise AssertionError(f"Expected 2/3, got {ratio}")

    ratio = header_similarity(["Date", "Date", "Mood", "Mood"], ["Date", "Mood"])
    if ratio != 0.5:
        raise AssertionError(f"Expected 0.5, got {ratio}")


def test_find_similar_identical_headers() -> None:
    """Test that a file with the same headers gets the saved mapping suggested."""
    store = MappingStore(InMemoryMappingRepository())
    saved = store.save("Phone", MAPPING, HEADERS)

    similar = store.find_similar(list(HEADERS))

    if similar is None or similar.id != saved.id:
        raise AssertionError(f"Expected 'Phone' mapping, got {similar}")


def test_find_similar_below_threshold() -> None:
    """Test that low header overlap gives no suggestion."""
    store = MappingStore(InMemoryMappingRepository())
    store.save("Phone", MAPPING, HEADERS)

    similar = store.find_similar(HEADERS[:4] + ["Steps", "Weight", "Notes"])

    if similar is not None:
        raise AssertionError(f"Expected no suggestion, got {similar.name}")


def test_find_similar_threshold_is_inclusive() -> None:
    """Test that an overlap exactly at the threshold is a match."""
    store = MappingStore(InMemoryMappingRepository())
    saved_headers = [f"h{i}" for i in range(10)]
    store.save("Ten", {"date": "h0"}, saved_headers)

    similar = store.find_similar(saved_headers[:7] + ["x", "y", "z"])

    if similar is None:
        raise AssertionError("Expected a suggestion at 70% overlap")


def test_find_similar_prefers_oldest_match() -> None:
    """Test that the first matching mapping in creation order wins."""
    store = MappingStore(InMemoryMappingRepository())
    store.save("First", MAPPING, HEADERS)
    store.save("Second", MAPPING, HEADERS)

    similar = store.find_similar(HEADERS)

    if similar is None or similar.name != "First":
        raise AssertionError(f"Expected 'First', got {similar}")


def test_json_repository_round_trip(tmp_path: Path) -> None:
    """Test that mappings survive a reload from the JSON file."""
    path = tmp_path / "mappings" / "csv_mappings.json"
    store = MappingStore(JsonFileMappingRepository(path), timezone="America/Santiago")
    saved = store.save("Phone", MAPPING, HEADERS)

    reloaded = MappingStore(JsonFileMappingRepository(path))

    found = reloaded.find(saved.id)
    if found is None:
        raise AssertionError("Expected saved mapping after reload")
    if found.headers != HEADERS or found.created_at != saved.created_at:
        raise AssertionError(f"Unexpected reloaded mapping: {found}")


def test_json_repository_corrupt_file_reads_empty(tmp_path: Path) -> None:
    """Test that a corrupt mapping file does not block the store."""
    path = tmp_path / "csv_mappings.json"
    path.write_text("{not json", encoding="utf-8")

    store = MappingStore(JsonFileMappingRepository(path))

    if store.list_all():
        raise AssertionError(f"Expected no mappings, got {store.list_all()}")


def test_json_repository_writes_list(tmp_path: Path) -> None:
    """Test the on-disk layout of the mapping file."""
    path = tmp_path / "csv_mappings.json"
    MappingStore(JsonFileMappingRepository(path)).save("Phone", MAPPING, HEADERS)

    data = json.loads(path.read_text(encoding="utf-8"))

    if not isinstance(data, list) or data[0]["name"] != "Phone":
        raise AssertionError(f"Unexpected file contents: {data}")
