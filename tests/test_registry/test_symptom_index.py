"""
Unit tests for the Symptom Index.
"""

import pytest

from herbful.registry.symptom_index import SymptomIndex, sanitize_symptom_key
from herbful.utils.storage import TreeStore


@pytest.fixture
def index():
    return SymptomIndex(TreeStore())


def test_sanitize_symptom_key():
    """Test lowercasing and replacement of unsafe key characters."""
    assert sanitize_symptom_key("Headache") == "headache"
    assert sanitize_symptom_key("Fever/Chills.") == "fever_chills_"
    assert sanitize_symptom_key("  Cough [dry]  ") == "cough _dry_"
    assert sanitize_symptom_key("a#b$c") == "a_b_c"


def test_reindex_and_lookup(index):
    """Test that a treatment is listed under each of its symptoms."""
    index.reindex_treatment("lagundi", ["Cough", "Fever"])

    assert index.lookup("cough") == ["lagundi"]
    assert index.lookup("FEVER") == ["lagundi"]
    assert index.lookup("headache") == []


def test_case_variants_share_one_entry(index):
    """Test that symptoms differing only in case merge into one entry."""
    index.reindex_treatment("ginger", ["Headache"])
    index.reindex_treatment("mint", ["headache"])

    entries = index.load()
    assert list(entries) == ["headache"]
    assert entries["headache"].name == "Headache"
    assert entries["headache"].treatment_ids == ["ginger", "mint"]


def test_reindex_prunes_stale_entries(index):
    """Test that removed symptoms drop the treatment and empty entries vanish."""
    index.reindex_treatment("ginger", ["Nausea", "Headache"])
    index.reindex_treatment("mint", ["Headache"])

    index.reindex_treatment("ginger", ["Cough"])

    entries = index.load()
    assert "nausea" not in entries
    assert entries["headache"].treatment_ids == ["mint"]
    assert entries["cough"].treatment_ids == ["ginger"]


def test_remove_treatment(index):
    """Test removing a treatment from every entry."""
    index.reindex_treatment("ginger", ["Nausea"])
    index.remove_treatment("ginger")

    assert index.load() == {}
    assert index.store.get("symptoms") is None


def test_symptom_round_trip():
    """Test rebuilding from treatment records after the index is lost."""
    store = TreeStore({
        "treatments": {
            "ginger": {"name": "Ginger Tea", "symptoms": ["Nausea", "Headache"]},
            "mint": {"name": "Mint Oil", "symptoms": ["headache"]},
            "garlic": {"name": "Garlic", "symptoms": {"0": "Cold"}},
        },
        "symptoms": {"garbage": {"name": "Old", "treatmentIds": ["gone"]}},
    })
    index = SymptomIndex(store)

    assert index.rebuild() == 3
    entries = index.load()
    assert set(entries) == {"nausea", "headache", "cold"}
    assert entries["headache"].treatment_ids == ["ginger", "mint"]
    assert index.lookup("Cold") == ["garlic"]


def test_rename_symptom():
    """Test renaming a symptom across treatments."""
    store = TreeStore({
        "treatments": {
            "ginger": {"name": "Ginger Tea", "symptoms": ["Head ache", "Nausea"]},
            "mint": {"name": "Mint Oil", "symptoms": ["Head ache"]},
            "garlic": {"name": "Garlic", "symptoms": ["Cold"]},
        }
    })
    index = SymptomIndex(store, clock=lambda: "2024-06-01T08:30:00.000Z")

    changed = index.rename_symptom("Head ache", "Headache")

    assert changed == 2
    assert store.get("treatments/ginger/symptoms") == ["Headache", "Nausea"]
    assert store.get("treatments/ginger/updatedAt") == "2024-06-01T08:30:00.000Z"
    assert store.get("treatments/mint/updatedAt") == "2024-06-01T08:30:00.000Z"
    assert store.get("treatments/garlic/updatedAt") is None
    assert index.lookup("headache") == ["ginger", "mint"]
    assert index.lookup("head ache") == []


def test_rename_symptom_no_op(index):
    """Test that blank or identical names change nothing."""
    assert index.rename_symptom("Cough", "Cough") == 0
    assert index.rename_symptom("", "Cough") == 0


def test_load_drops_malformed_entries():
    """Test that malformed entries are ignored and reported by check."""
    store = TreeStore({
        "symptoms": {
            "cough": {"name": "Cough", "treatmentIds": ["lagundi"]},
            "broken": "not an entry",
            "fever": {"name": "Headache", "treatmentIds": ["x"]},
        }
    })
    index = SymptomIndex(store)

    assert set(index.load()) == {"cough", "fever"}
    problems = index.check()
    assert len(problems) == 2
    assert any(p.startswith("broken") for p in problems)
    assert any(p.startswith("fever") for p in problems)


# Run tests if executed directly
if __name__ == "__main__":
    pytest.main([__file__, "-v"])
