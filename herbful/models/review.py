"""
Review data model.

A user-submitted rating of a treatment, stored under ``reviews/<id>``.
"""

import math
from dataclasses import dataclass
from typing import Optional, Sequence

# Python attribute -> stored key, for fields an admin may edit
EDITABLE_FIELDS = {
    "treatment_id": "treatmentId",
    "treatment_name": "treatmentName",
    "rating": "rating",
    "comment": "comment",
    "user_name": "userName",
    "user_email": "userEmail",
    "anonymous": "anonymous",
    "admin_notes": "adminNotes",
}


@dataclass
class Review:
    """
    A rating left for a treatment.

    ``treatment_name`` is a denormalized copy of the treatment's name and
    serves as a fallback join key when the id link is broken.
    """
    id: str
    treatment_id: str
    treatment_name: str
    rating: int  # 1-5 stars
    comment: str = ""
    user_name: str = ""
    user_email: str = ""
    anonymous: bool = False
    admin_notes: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""

    def __post_init__(self):
        if isinstance(self.rating, bool) or not isinstance(self.rating, int):
            raise ValueError(f"Invalid rating: {self.rating!r}. Must be an integer")
        if not (1 <= self.rating <= 5):
            raise ValueError(f"Invalid rating: {self.rating}. Must be 1-5")

    @classmethod
    def from_dict(cls, review_id: str, data: dict) -> "Review":
        rating = data.get("rating")
        if isinstance(rating, float) and rating.is_integer():
            rating = int(rating)
        return cls(
            id=review_id,
            treatment_id=data.get("treatmentId", "") or "",
            treatment_name=data.get("treatmentName", "") or "",
            rating=rating,
            comment=data.get("comment", "") or "",
            user_name=data.get("userName", "") or "",
            user_email=data.get("userEmail", "") or "",
            anonymous=bool(data.get("anonymous", False)),
            admin_notes=data.get("adminNotes") or None,
            created_at=data.get("createdAt", "") or "",
            updated_at=data.get("updatedAt", "") or ""
        )

    def to_dict(self) -> dict:
        data = {
            "treatmentId": self.treatment_id,
            "treatmentName": self.treatment_name,
            "rating": self.rating,
            "comment": self.comment,
            "userName": self.user_name,
            "userEmail": self.user_email,
            "anonymous": self.anonymous,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at
        }
        if self.admin_notes:
            data["adminNotes"] = self.admin_notes
        return data


def round_rating(mean: float) -> float:
    """Round to one decimal, halves rounding up (4.65 -> 4.7)."""
    return math.floor(mean * 10 + 0.5) / 10


@dataclass
class RatingSummary:
    """Review count and one-decimal average for one treatment."""
    total_reviews: int = 0
    average_rating: float = 0.0

    @classmethod
    def from_ratings(cls, ratings: Sequence[int]) -> "RatingSummary":
        if not ratings:
            return cls()
        return cls(
            total_reviews=len(ratings),
            average_rating=round_rating(sum(ratings) / len(ratings))
        )
