"""
Treatment data model.

A remedy record in the catalog. Stored under ``treatments/<id>`` with
camelCase keys; the id is the record's key, not a stored field.
"""

import re
from dataclasses import dataclass, field
from typing import Any, List, Optional

LOCAL_REMEDY = "Local Remedy"
VERIFIED_SOURCE = "Verified Source"
SOURCE_TYPES = (LOCAL_REMEDY, VERIFIED_SOURCE)

# Characters the database refuses in keys
UNSAFE_ID_CHARS = re.compile(r"[.#$/\[\]]")

# Python attribute -> stored key, for fields an admin may edit
EDITABLE_FIELDS = {
    "name": "name",
    "source_type": "sourceType",
    "sources": "sources",
    "preparation": "preparation",
    "usage": "usage",
    "dosage": "dosage",
    "warnings": "warnings",
    "benefits": "benefits",
    "symptoms": "symptoms",
    "image_url": "imageUrl",
}


def as_list(value: Any) -> List:
    """
    Coerce a stored array back into a list.

    The database hands back sparse arrays as index-keyed objects.
    """
    if value is None:
        return []
    if isinstance(value, dict):
        return [value[k] for k in sorted(value, key=lambda k: int(k) if str(k).isdigit() else 0)]
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


@dataclass
class SourceInfo:
    """Reference backing a verified treatment."""
    authority: str = ""  # WHO, EMA, ...
    url: str = ""
    description: str = ""
    verification_date: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "SourceInfo":
        return cls(
            authority=data.get("authority", "") or "",
            url=data.get("url", "") or "",
            description=data.get("description", "") or "",
            verification_date=data.get("verificationDate", "") or ""
        )

    def to_dict(self) -> dict:
        return {
            "authority": self.authority,
            "url": self.url,
            "description": self.description,
            "verificationDate": self.verification_date
        }


@dataclass
class Treatment:
    """
    A remedy in the catalog.

    ``average_rating`` and ``total_reviews`` are cached aggregates over
    the review collection, refreshed after every review mutation.
    """
    id: str
    name: str
    source_type: str = LOCAL_REMEDY
    sources: List[SourceInfo] = field(default_factory=list)
    preparation: List[str] = field(default_factory=list)
    usage: str = ""
    dosage: str = ""
    warnings: List[str] = field(default_factory=list)
    benefits: List[str] = field(default_factory=list)
    symptoms: List[str] = field(default_factory=list)
    image_url: Optional[str] = None
    average_rating: float = 0.0
    total_reviews: int = 0
    created_at: str = ""  # ISO-8601, immutable after creation
    updated_at: str = ""  # ISO-8601, refreshed on every write

    def __post_init__(self):
        if self.source_type not in SOURCE_TYPES:
            raise ValueError(
                f"Invalid sourceType: {self.source_type!r}. Must be one of {SOURCE_TYPES}"
            )

    @property
    def is_verified(self) -> bool:
        return self.source_type == VERIFIED_SOURCE

    @classmethod
    def from_dict(cls, treatment_id: str, data: dict) -> "Treatment":
        """
        Build a Treatment from a stored record.

        Older records carry a single ``sourceInfo`` object instead of the
        ``sources`` list; it is read as a one-element list.
        """
        raw_sources = as_list(data.get("sources"))
        if not raw_sources and isinstance(data.get("sourceInfo"), dict):
            raw_sources = [data["sourceInfo"]]

        return cls(
            id=treatment_id,
            name=data.get("name", "") or "",
            source_type=data.get("sourceType", LOCAL_REMEDY) or LOCAL_REMEDY,
            sources=[SourceInfo.from_dict(s) for s in raw_sources if isinstance(s, dict)],
            preparation=[str(p) for p in as_list(data.get("preparation"))],
            usage=data.get("usage", "") or "",
            dosage=data.get("dosage", "") or "",
            warnings=[str(w) for w in as_list(data.get("warnings"))],
            benefits=[str(b) for b in as_list(data.get("benefits"))],
            symptoms=[str(s) for s in as_list(data.get("symptoms"))],
            image_url=data.get("imageUrl") or None,
            average_rating=float(data.get("averageRating", 0) or 0),
            total_reviews=int(data.get("totalReviews", 0) or 0),
            created_at=data.get("createdAt", "") or "",
            updated_at=data.get("updatedAt", "") or ""
        )

    def to_dict(self) -> dict:
        """Convert to the stored record (no id, no empty image)."""
        data = {
            "name": self.name,
            "sourceType": self.source_type,
            "sources": [s.to_dict() for s in self.sources],
            "preparation": list(self.preparation),
            "usage": self.usage,
            "dosage": self.dosage,
            "warnings": list(self.warnings),
            "benefits": list(self.benefits),
            "symptoms": list(self.symptoms),
            "averageRating": self.average_rating,
            "totalReviews": self.total_reviews,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at
        }
        if self.image_url:
            data["imageUrl"] = self.image_url
        return data
