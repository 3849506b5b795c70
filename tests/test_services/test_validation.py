"""
Unit tests for form validation rules.
"""

import pytest

from herbful.errors import ValidationFailed
from herbful.models.treatment import LOCAL_REMEDY, VERIFIED_SOURCE, SourceInfo
from herbful.services.validation import (
    validate_email,
    validate_image,
    validate_new_password,
    validate_review,
    validate_treatment,
    validate_username,
)


def base_fields(**overrides):
    fields = {
        "name": "Sambong Tea",
        "source_type": LOCAL_REMEDY,
        "preparation": ["Boil 10 leaves", "  ", "Strain"],
        "usage": "Drink three times a day",
        "dosage": "1 cup",
        "warnings": ["", "Not for children"],
        "benefits": ["Diuretic", "diuretic", " Kidney support "],
        "symptoms": ["Edema"],
    }
    fields.update(overrides)
    return fields


def test_treatment_cleaning():
    """Test trimming, blank removal and case-insensitive de-duplication."""
    cleaned = validate_treatment(base_fields())

    assert cleaned["preparation"] == ["Boil 10 leaves", "Strain"]
    assert cleaned["warnings"] == ["Not for children"]
    assert cleaned["benefits"] == ["Diuretic", "Kidney support"]
    assert cleaned["sources"] == []
    assert cleaned["image_url"] is None


def test_treatment_required_fields():
    """Test that every missing field is reported at once."""
    with pytest.raises(ValidationFailed) as exc_info:
        validate_treatment({"name": "ab", "usage": "short", "preparation": [" "]})

    errors = exc_info.value.errors
    assert set(errors) == {"name", "usage", "dosage", "preparation", "benefits"}
    assert "at least 3" in errors["name"]


def test_unknown_source_type():
    with pytest.raises(ValidationFailed) as exc_info:
        validate_treatment(base_fields(source_type="Folk Tale"))
    assert "source_type" in exc_info.value.errors


def test_verified_source_rules():
    """Test per-source field checks for verified treatments."""
    with pytest.raises(ValidationFailed) as exc_info:
        validate_treatment(base_fields(source_type=VERIFIED_SOURCE))
    assert "sources" in exc_info.value.errors

    bad = {"authority": "DOH", "url": "doh.gov.ph", "description": "", "verificationDate": ""}
    with pytest.raises(ValidationFailed) as exc_info:
        validate_treatment(base_fields(source_type=VERIFIED_SOURCE, sources=[bad]))
    assert set(exc_info.value.errors) == {
        "sources[0].url", "sources[0].description", "sources[0].verificationDate"
    }

    good = SourceInfo("DOH", "https://doh.gov.ph/sambong", "Approved", "2023-05-01")
    cleaned = validate_treatment(base_fields(source_type=VERIFIED_SOURCE, sources=[good]))
    assert cleaned["sources"] == [good]


def test_review_rules():
    """Test review validation and anonymous clean-up."""
    cleaned = validate_review({
        "treatment_id": " sambong-tea ",
        "rating": 4,
        "user_name": "Ben",
        "user_email": "not-checked-when-anonymous",
        "anonymous": True,
    })
    assert cleaned["treatment_id"] == "sambong-tea"
    assert cleaned["user_name"] == ""
    assert cleaned["user_email"] == ""
    assert cleaned["admin_notes"] is None

    with pytest.raises(ValidationFailed) as exc_info:
        validate_review({"treatment_id": "", "rating": 7, "user_email": "ben@"})
    assert set(exc_info.value.errors) == {"treatment_id", "rating", "user_email"}


def test_image_rules():
    validate_image("leaf.png", "image/png", 1024)

    with pytest.raises(ValidationFailed):
        validate_image("leaf.pdf", "application/pdf", 1024)
    with pytest.raises(ValidationFailed):
        validate_image("huge.png", "image/png", 5 * 1024 * 1024 + 1)


def test_account_rules():
    """Test username, email and password rules."""
    assert validate_username(" new_admin ") == "new_admin"
    for bad in ["", "ab", "bad name", "bad-name"]:
        with pytest.raises(ValidationFailed):
            validate_username(bad)

    assert validate_email("ops@herbful.com", current_email="admin@herbful.com") == "ops@herbful.com"
    with pytest.raises(ValidationFailed):
        validate_email("ADMIN@herbful.com", current_email="admin@herbful.com")
    with pytest.raises(ValidationFailed):
        validate_email("nope")

    assert validate_new_password("NewPass1", current_password="admin123") == "NewPass1"
    for bad in ["Short1", "lowercase1", "NoDigitsHere", "admin123"]:
        with pytest.raises(ValidationFailed):
            validate_new_password(bad, current_password="admin123")
    with pytest.raises(ValidationFailed):
        validate_new_password("SamePass1", current_password="SamePass1")


# Run tests if executed directly
if __name__ == "__main__":
    pytest.main([__file__, "-v"])
