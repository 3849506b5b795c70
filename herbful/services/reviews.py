"""
Review Service.

Review CRUD and listing, plus the rating aggregation that keeps each
treatment's cached ``averageRating`` / ``totalReviews`` in line with its
reviews.
"""

import logging
import uuid
from typing import Any, Callable, Dict, List, Optional

from herbful.errors import NotFound, UpstreamReadFailed, ValidationFailed
from herbful.models.page import ReviewPage
from herbful.models.review import EDITABLE_FIELDS, RatingSummary, Review
from herbful.services.validation import validate_review
from herbful.utils.clock import now_iso, parse_iso
from herbful.utils.locks import KeyedLock
from herbful.utils.pagination import paginate
from herbful.utils.storage import CollectionStore

logger = logging.getLogger(__name__)

REVIEW_SORTS = ("newest", "oldest", "highest", "lowest")
# Fields whose change alters a treatment's aggregate
RATING_FIELDS = ("rating", "treatment_id")


def sort_reviews(reviews: List[Review], sort_by: str) -> List[Review]:
    """
    Order reviews for display.

    newest/oldest break ties by id; highest/lowest break ties newest first.
    """
    if sort_by == "newest":
        ordered = sorted(reviews, key=lambda r: r.id)
        return sorted(ordered, key=lambda r: parse_iso(r.created_at), reverse=True)
    if sort_by == "oldest":
        ordered = sorted(reviews, key=lambda r: r.id)
        return sorted(ordered, key=lambda r: parse_iso(r.created_at))

    ordered = sorted(reviews, key=lambda r: parse_iso(r.created_at), reverse=True)
    return sorted(ordered, key=lambda r: r.rating, reverse=(sort_by == "highest"))


class ReviewService:
    """
    Review operations over the ``reviews`` collection.

    Each mutation and the rating recompute that follows it run under a
    lock for the affected treatment, so two mutations for the same
    treatment cannot interleave their read-compute-write cycles.
    """

    def __init__(
        self,
        store: CollectionStore,
        reviews_path: str = "reviews",
        treatments_path: str = "treatments",
        clock: Callable[[], str] = now_iso,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
        locks: Optional[KeyedLock] = None
    ):
        self.store = store
        self.reviews_path = reviews_path
        self.treatments_path = treatments_path
        self.clock = clock
        self.id_factory = id_factory
        self.locks = locks or KeyedLock()

    def _path(self, review_id: str) -> str:
        return f"{self.reviews_path}/{review_id}"

    def all_reviews(self) -> List[Review]:
        """Load every review, skipping records that fail to parse."""
        raw = self.store.get(self.reviews_path) or {}
        reviews = []
        for review_id, data in raw.items():
            if not isinstance(data, dict):
                logger.warning(f"Skipping review {review_id}: record is not an object")
                continue
            try:
                reviews.append(Review.from_dict(review_id, data))
            except (TypeError, ValueError) as e:
                logger.warning(f"Skipping review {review_id}: {e}")
        return reviews

    def list_reviews(
        self,
        page: int = 1,
        page_size: int = 10,
        search_term: Optional[str] = None,
        rating_filter: Optional[int] = None,
        treatment_filter: Optional[str] = None,
        sort_by: str = "newest"
    ) -> ReviewPage:
        """
        One page of reviews.

        Args:
            page: 1-based page number
            page_size: Reviews per page
            search_term: Case-insensitive substring matched against the
                treatment name, comment, reviewer name and email
            rating_filter: Keep only reviews with exactly this many stars
            treatment_filter: Keep only reviews whose treatment name
                matches (case-insensitive)
            sort_by: newest (default), oldest, highest or lowest

        Returns:
            ReviewPage. ``stats_total`` counts the whole collection and
            ``rating_counts`` the reviews left after the search.
        """
        if sort_by not in REVIEW_SORTS:
            raise ValidationFailed({"sortBy": f"Sort must be one of: {', '.join(REVIEW_SORTS)}"})
        if rating_filter is not None and not 1 <= rating_filter <= 5:
            raise ValidationFailed({"rating": "Rating filter must be between 1 and 5"})

        reviews = self.all_reviews()
        stats_total = len(reviews)

        if search_term:
            needle = search_term.lower()
            reviews = [
                r for r in reviews
                if needle in r.treatment_name.lower()
                or needle in r.comment.lower()
                or needle in r.user_name.lower()
                or needle in r.user_email.lower()
            ]

        rating_counts: Dict[int, int] = {}
        for review in reviews:
            rating_counts[review.rating] = rating_counts.get(review.rating, 0) + 1

        if rating_filter:
            reviews = [r for r in reviews if r.rating == rating_filter]
        if treatment_filter:
            wanted = treatment_filter.lower()
            reviews = [r for r in reviews if r.treatment_name.lower() == wanted]

        reviews = sort_reviews(reviews, sort_by)
        items, total_count, total_pages = paginate(reviews, page, page_size)
        return ReviewPage(
            items=items,
            total_count=total_count,
            total_pages=total_pages,
            stats_total=stats_total,
            rating_counts=rating_counts
        )

    def get_review(self, review_id: str) -> Review:
        """
        Raises:
            NotFound: If no review is stored under the id
        """
        if not review_id or not review_id.strip():
            raise NotFound("review", review_id or "")
        data = self.store.get(self._path(review_id))
        if data is None:
            raise NotFound("review", review_id)
        try:
            return Review.from_dict(review_id, data)
        except (AttributeError, TypeError, ValueError) as e:
            raise UpstreamReadFailed(f"Review {review_id} is malformed: {e}", details={"id": review_id})

    def _treatment_name(self, treatment_id: str) -> str:
        data = self.store.get(f"{self.treatments_path}/{treatment_id}")
        if not isinstance(data, dict):
            raise NotFound("treatment", treatment_id)
        return data.get("name", "") or ""

    def create_review(self, fields: Dict[str, Any]) -> Review:
        """
        Store a new review and refresh its treatment's rating.

        ``treatment_name`` is filled from the treatment when omitted.

        Raises:
            ValidationFailed: If the form fields are invalid
            NotFound: If the referenced treatment does not exist
        """
        cleaned = validate_review(fields)
        treatment_id = cleaned["treatment_id"]

        with self.locks.hold(treatment_id):
            name = self._treatment_name(treatment_id)
            if not cleaned["treatment_name"]:
                cleaned["treatment_name"] = name

            now = self.clock()
            review = Review(id=self.id_factory(), created_at=now, updated_at=now, **cleaned)
            self.store.set(self._path(review.id), review.to_dict())
            logger.info(f"Created review {review.id}: {review.rating} stars for {treatment_id}")

            self.recompute_treatment_rating(treatment_id)
        return review

    def update_review(self, review_id: str, changes: Dict[str, Any]) -> Review:
        """
        Apply a partial update to a review.

        The treatment rating is recomputed only when the rating or the
        treatment link changes; moving a review recomputes both the old
        and the new treatment.

        Raises:
            NotFound: If the review (or a newly linked treatment) does not exist
            ValidationFailed: If the merged fields are invalid
        """
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationFailed({f: "Field cannot be edited" for f in sorted(unknown)})

        existing = self.get_review(review_id)
        merged = {attr: getattr(existing, attr) for attr in EDITABLE_FIELDS}
        merged.update(changes)
        cleaned = validate_review(merged)

        old_treatment = existing.treatment_id
        new_treatment = cleaned["treatment_id"]

        with self.locks.hold(old_treatment, new_treatment):
            if new_treatment != old_treatment and "treatment_name" not in changes:
                cleaned["treatment_name"] = self._treatment_name(new_treatment)

            patch = {}
            for attr, key in EDITABLE_FIELDS.items():
                if cleaned[attr] != getattr(existing, attr):
                    patch[key] = cleaned[attr]
            now = self.clock()
            patch["updatedAt"] = now
            self.store.update(self._path(review_id), patch)
            logger.info(f"Updated review {review_id}: {sorted(k for k in patch if k != 'updatedAt')}")

            if any(cleaned[attr] != getattr(existing, attr) for attr in RATING_FIELDS):
                self.recompute_treatment_rating(new_treatment)
                if old_treatment != new_treatment:
                    self.recompute_treatment_rating(old_treatment)

        return Review(id=review_id, created_at=existing.created_at, updated_at=now, **cleaned)

    def delete_review(self, review_id: str) -> None:
        """
        Delete a review and refresh its treatment's rating.

        Raises:
            NotFound: If the review does not exist
        """
        existing = self.get_review(review_id)
        with self.locks.hold(existing.treatment_id):
            self.store.delete(self._path(review_id))
            logger.info(f"Deleted review {review_id} for {existing.treatment_id}")
            self.recompute_treatment_rating(existing.treatment_id)

    def recompute_treatment_rating(self, treatment_id: str) -> Optional[RatingSummary]:
        """
        Recompute a treatment's cached rating from the review collection.

        Counts every review whose ``treatmentId`` equals ``treatment_id``;
        with none, the rating resets to 0 / 0. Only ``averageRating``,
        ``totalReviews`` and ``updatedAt`` are written.

        Returns:
            The written summary, or None if the treatment no longer exists
        """
        with self.locks.hold(treatment_id):
            ratings = [r.rating for r in self.all_reviews() if r.treatment_id == treatment_id]
            summary = RatingSummary.from_ratings(ratings)

            treatment_path = f"{self.treatments_path}/{treatment_id}"
            if not self.store.exists(treatment_path):
                logger.warning(f"Treatment {treatment_id} not found, skipping rating update")
                return None

            self.store.update(treatment_path, {
                "averageRating": summary.average_rating,
                "totalReviews": summary.total_reviews,
                "updatedAt": self.clock()
            })
        logger.info(
            f"Treatment {treatment_id} rating: {summary.average_rating} "
            f"from {summary.total_reviews} reviews"
        )
        return summary

    def repair_ratings(self) -> Dict[str, RatingSummary]:
        """Recompute the cached rating of every treatment."""
        treatment_ids = list((self.store.get(self.treatments_path) or {}).keys())
        results = {}
        for treatment_id in treatment_ids:
            summary = self.recompute_treatment_rating(treatment_id)
            if summary is not None:
                results[treatment_id] = summary
        logger.info(f"Recomputed ratings for {len(results)} treatments")
        return results
