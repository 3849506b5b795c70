"""
Unit tests for the storage backends.
"""

import json
import os
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from herbful.errors import UpstreamReadFailed, UpstreamWriteFailed
from herbful.utils.storage import (
    JsonFileStore,
    LocalBlobStore,
    LocalStateStore,
    TreeStore,
    prune_empty,
)


def test_prune_empty_drops_nulls_and_empty_containers():
    """Test that None values and empty containers disappear."""
    value = {"a": None, "b": {}, "c": [], "d": {"e": None}, "f": [1, None], "g": "", "h": False}
    assert prune_empty(value) == {"f": [1], "g": "", "h": False}
    assert prune_empty({"a": None}) is None


def test_tree_store_set_get_update_delete():
    """Test basic path operations on the in-memory tree."""
    store = TreeStore()
    store.set("treatments/ginger", {"name": "Ginger", "usage": "Chew a slice"})

    assert store.get("treatments/ginger/name") == "Ginger"
    assert store.exists("treatments/ginger")

    store.update("treatments/ginger", {"name": "Ginger Root", "dosage": "2 slices"})
    assert store.get("treatments/ginger") == {
        "name": "Ginger Root", "usage": "Chew a slice", "dosage": "2 slices"
    }

    store.update("treatments/ginger", {"dosage": None})
    assert store.get("treatments/ginger/dosage") is None

    store.delete("treatments/ginger")
    assert store.get("treatments/ginger") is None
    # Emptied parents are pruned
    assert store.get("treatments") is None
    assert store.snapshot() == {}


def test_tree_store_returns_copies():
    """Test that mutating a read value does not touch the stored tree."""
    store = TreeStore({"reviews": {"r1": {"rating": 5}}})
    value = store.get("reviews")
    value["r1"]["rating"] = 1

    assert store.get("reviews/r1/rating") == 5


def test_tree_store_set_empty_deletes():
    """Test that writing an empty container removes the node."""
    store = TreeStore({"symptoms": {"fever": {"name": "Fever", "treatmentIds": ["a"]}}})
    store.set("symptoms", {})
    assert store.get("symptoms") is None


def test_json_file_store_persists():
    """Test that writes survive reopening the file."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "db", "database.json")
        store = JsonFileStore(path)
        store.set("treatments/lagundi", {"name": "Lagundi"})

        reopened = JsonFileStore(path)
        assert reopened.get("treatments/lagundi/name") == "Lagundi"

        with open(path, "r", encoding="utf-8") as f:
            assert json.load(f) == {"treatments": {"lagundi": {"name": "Lagundi"}}}


def test_json_file_store_restores_from_backup():
    """Test fallback to the backup when the main file is corrupt."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "database.json")
        store = JsonFileStore(path)
        store.set("treatments/a", {"name": "First"})
        store.set("treatments/b", {"name": "Second"})

        assert os.path.exists(f"{path}.backup")

        with open(path, "w", encoding="utf-8") as f:
            f.write("{not json")

        restored = JsonFileStore(path)
        assert restored.get("treatments/a/name") == "First"
        assert restored.get("treatments/b") is None


def test_json_file_store_unreadable_without_backup():
    """Test that a corrupt file with no backup raises UpstreamReadFailed."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "database.json")
        with open(path, "w", encoding="utf-8") as f:
            f.write("[1, 2")

        with pytest.raises(UpstreamReadFailed):
            JsonFileStore(path)


def test_json_file_store_failed_save_keeps_previous_tree():
    """Test that set, update and delete leave no trace when the save fails."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "database.json")
        store = JsonFileStore(path)
        store.set("treatments/a", {"name": "A", "usage": "Steep"})

        with patch("herbful.utils.storage.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(UpstreamWriteFailed):
                store.set("treatments/b", {"name": "B"})
            with pytest.raises(UpstreamWriteFailed):
                store.update("treatments/a", {"name": "Renamed", "usage": None})
            with pytest.raises(UpstreamWriteFailed):
                store.delete("treatments/a")

        assert store.get("treatments") == {"a": {"name": "A", "usage": "Steep"}}
        assert not os.path.exists(f"{path}.tmp")
        assert JsonFileStore(path).snapshot() == store.snapshot()

        # The next successful write does not carry the failed ones along
        store.set("treatments/c", {"name": "C"})
        with open(path, "r", encoding="utf-8") as f:
            assert set(json.load(f)["treatments"]) == {"a", "c"}


def test_json_file_store_reports_save_error_when_temp_path_blocked():
    """Test that an unusable temp path raises UpstreamWriteFailed."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "database.json")
        store = JsonFileStore(path)
        os.makedirs(f"{path}.tmp")

        with pytest.raises(UpstreamWriteFailed):
            store.set("treatments/a", {"name": "A"})

        assert store.get("treatments/a") is None
        assert os.path.isdir(f"{path}.tmp")


def test_local_blob_store_put_and_delete():
    """Test storing and deleting a blob by its URL."""
    with tempfile.TemporaryDirectory() as tmpdir:
        blobs = LocalBlobStore(tmpdir)
        url = blobs.put(b"\x89PNG", "treatments/images/ginger/1_leaf.png", "image/png")

        assert url.startswith("file://")
        target = Path(tmpdir).resolve() / "treatments" / "images" / "ginger" / "1_leaf.png"
        assert target.read_bytes() == b"\x89PNG"

        blobs.delete(url)
        assert not target.exists()

        # Deleting again and deleting a foreign URL are both ignored
        blobs.delete(url)
        blobs.delete("https://example.com/leaf.png")


def test_local_state_store_roundtrip():
    """Test state records and removal of corrupt ones."""
    with tempfile.TemporaryDirectory() as tmpdir:
        state = LocalStateStore(tmpdir)
        assert state.get_item("session") is None

        state.set_item("session", {"user": "admin"})
        assert state.get_item("session") == {"user": "admin"}

        state.remove_item("session")
        assert state.get_item("session") is None
        state.remove_item("session")

        with open(os.path.join(tmpdir, "broken.json"), "w", encoding="utf-8") as f:
            f.write("???")
        assert state.get_item("broken") is None
        assert not os.path.exists(os.path.join(tmpdir, "broken.json"))


# Run tests if executed directly
if __name__ == "__main__":
    pytest.main([__file__, "-v"])
