"""
Form validation.

Field-level checks for the treatment, review and account forms. Each
validator returns a cleaned copy of its input or raises ValidationFailed
carrying every failing field at once.
"""

import re
from typing import Any, Dict, Iterable, List, Optional

from herbful.errors import ValidationFailed
from herbful.models.treatment import SOURCE_TYPES, LOCAL_REMEDY, VERIFIED_SOURCE, SourceInfo

URL_PATTERN = re.compile(r"^https?://.+\..+")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]+$")

MIN_NAME_LENGTH = 3
MIN_USAGE_LENGTH = 10
MAX_IMAGE_BYTES = 5 * 1024 * 1024


def clean_lines(values: Optional[Iterable[Any]]) -> List[str]:
    """Trim every entry and drop the blank ones."""
    return [str(v).strip() for v in (values or []) if v is not None and str(v).strip()]


def unique_casefold(values: Iterable[str]) -> List[str]:
    """Drop case-insensitive duplicates, keeping the first spelling."""
    seen = set()
    result = []
    for value in values:
        key = value.lower()
        if key not in seen:
            seen.add(key)
            result.append(value)
    return result


def _as_source(value: Any) -> SourceInfo:
    if isinstance(value, SourceInfo):
        return value
    if isinstance(value, dict):
        return SourceInfo(
            authority=str(value.get("authority", "") or "").strip(),
            url=str(value.get("url", "") or "").strip(),
            description=str(value.get("description", "") or "").strip(),
            verification_date=str(
                value.get("verification_date", value.get("verificationDate", "")) or ""
            ).strip()
        )
    raise ValidationFailed({"sources": f"Unsupported source entry: {value!r}"})


def validate_sources(sources: List[SourceInfo]) -> Dict[str, str]:
    """Return the field errors for a verified treatment's sources."""
    if not sources:
        return {"sources": "At least one source is required for verified sources"}

    errors = {}
    for i, source in enumerate(sources):
        prefix = f"sources[{i}]"
        if not source.authority.strip():
            errors[f"{prefix}.authority"] = "Authority name is required for verified sources"
        if not source.url.strip():
            errors[f"{prefix}.url"] = "Source URL is required for verified sources"
        elif not URL_PATTERN.match(source.url.strip()):
            errors[f"{prefix}.url"] = "Please enter a valid URL"
        if not source.description.strip():
            errors[f"{prefix}.description"] = "Description is required for verified sources"
        if not source.verification_date.strip():
            errors[f"{prefix}.verificationDate"] = "Verification date is required"
    return errors


def validate_treatment(fields: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate and clean a full set of treatment form fields.

    Args:
        fields: Editable treatment fields keyed by attribute name
            (name, source_type, sources, preparation, usage, dosage,
            warnings, benefits, symptoms, image_url)

    Returns:
        Cleaned fields. Blank list entries are dropped, benefits and
        symptoms are de-duplicated case-insensitively, and sources are
        emptied for local remedies.

    Raises:
        ValidationFailed: With one message per failing field
    """
    errors: Dict[str, str] = {}

    name = str(fields.get("name") or "").strip()
    if not name:
        errors["name"] = "Treatment name is required"
    elif len(name) < MIN_NAME_LENGTH:
        errors["name"] = f"Treatment name must be at least {MIN_NAME_LENGTH} characters"

    usage = str(fields.get("usage") or "").strip()
    if not usage:
        errors["usage"] = "Usage guidelines are required"
    elif len(usage) < MIN_USAGE_LENGTH:
        errors["usage"] = "Please provide more detailed usage guidelines"

    dosage = str(fields.get("dosage") or "").strip()
    if not dosage:
        errors["dosage"] = "Dosage information is required"

    preparation = clean_lines(fields.get("preparation"))
    if not preparation:
        errors["preparation"] = "At least one preparation step is required"

    benefits = unique_casefold(clean_lines(fields.get("benefits")))
    if not benefits:
        errors["benefits"] = "Please select at least one benefit"

    source_type = fields.get("source_type") or LOCAL_REMEDY
    sources: List[SourceInfo] = []
    if source_type not in SOURCE_TYPES:
        errors["source_type"] = f"Source type must be one of: {', '.join(SOURCE_TYPES)}"
    elif source_type == VERIFIED_SOURCE:
        try:
            sources = [_as_source(s) for s in (fields.get("sources") or [])]
        except ValidationFailed as e:
            errors.update(e.errors)
        else:
            errors.update(validate_sources(sources))

    if errors:
        raise ValidationFailed(errors)

    image_url = fields.get("image_url")
    return {
        "name": name,
        "source_type": source_type,
        "sources": sources,
        "preparation": preparation,
        "usage": usage,
        "dosage": dosage,
        "warnings": clean_lines(fields.get("warnings")),
        "benefits": benefits,
        "symptoms": unique_casefold(clean_lines(fields.get("symptoms"))),
        "image_url": image_url.strip() if isinstance(image_url, str) and image_url.strip() else None,
    }


def validate_review(fields: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate and clean review form fields.

    Anonymous reviews never keep a reviewer name or email.

    Raises:
        ValidationFailed: If the treatment link or rating is invalid
    """
    errors: Dict[str, str] = {}

    treatment_id = str(fields.get("treatment_id") or "").strip()
    if not treatment_id:
        errors["treatment_id"] = "Please select a treatment"

    rating = fields.get("rating")
    if isinstance(rating, bool) or not isinstance(rating, int):
        errors["rating"] = "Rating must be a whole number of stars"
    elif not 1 <= rating <= 5:
        errors["rating"] = "Rating must be between 1 and 5"

    anonymous = bool(fields.get("anonymous", False))
    user_email = "" if anonymous else str(fields.get("user_email") or "").strip()
    if user_email and not EMAIL_PATTERN.match(user_email):
        errors["user_email"] = "Please enter a valid email address"

    if errors:
        raise ValidationFailed(errors)

    admin_notes = str(fields.get("admin_notes") or "").strip()
    return {
        "treatment_id": treatment_id,
        "treatment_name": str(fields.get("treatment_name") or "").strip(),
        "rating": rating,
        "comment": str(fields.get("comment") or "").strip(),
        "user_name": "" if anonymous else str(fields.get("user_name") or "").strip(),
        "user_email": user_email,
        "anonymous": anonymous,
        "admin_notes": admin_notes or None,
    }


def validate_image(filename: str, content_type: str, size: int) -> None:
    """
    Check an image upload before it reaches the blob store.

    Raises:
        ValidationFailed: If the file is not an image or exceeds 5 MiB
    """
    errors = {}
    if not filename or not filename.strip():
        errors["image"] = "Image file name is required"
    elif not (content_type or "").startswith("image/"):
        errors["image"] = "Please select an image file"
    elif size > MAX_IMAGE_BYTES:
        errors["image"] = "Image must be less than 5MB"
    if errors:
        raise ValidationFailed(errors)


def validate_username(username: str) -> str:
    username = (username or "").strip()
    if not username:
        raise ValidationFailed({"username": "Username is required"})
    if len(username) < 3:
        raise ValidationFailed({"username": "Username must be at least 3 characters"})
    if not USERNAME_PATTERN.match(username):
        raise ValidationFailed(
            {"username": "Username can only contain letters, numbers, and underscores"}
        )
    return username


def validate_email(email: str, current_email: Optional[str] = None) -> str:
    email = (email or "").strip()
    if not email:
        raise ValidationFailed({"email": "Email is required"})
    if not EMAIL_PATTERN.match(email):
        raise ValidationFailed({"email": "Please enter a valid email address"})
    if current_email and email.lower() == current_email.lower():
        raise ValidationFailed({"email": "New email must be different from current email"})
    return email


def validate_new_password(new_password: str, current_password: Optional[str] = None) -> str:
    """Password rules: 8+ characters with an uppercase letter and a digit."""
    if not new_password:
        raise ValidationFailed({"password": "New password is required"})
    if len(new_password) < 8:
        raise ValidationFailed({"password": "New password must be at least 8 characters"})
    if not re.search(r"[A-Z]", new_password):
        raise ValidationFailed({"password": "New password must contain at least one uppercase letter"})
    if not re.search(r"[0-9]", new_password):
        raise ValidationFailed({"password": "New password must contain at least one number"})
    if current_password is not None and new_password == current_password:
        raise ValidationFailed({"password": "New password must be different from current password"})
    return new_password
