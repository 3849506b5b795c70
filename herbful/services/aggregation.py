"""
Rating reports and dashboard figures.

Builds pandas tables over the whole review collection: live ratings for
display, cached-vs-computed consistency checks, and the dashboard summary.
"""

import logging
import os
from typing import Dict, List

import pandas as pd

from herbful.errors import HerbfulError
from herbful.models.review import RatingSummary, round_rating
from herbful.models.treatment import Treatment
from herbful.services.catalog import TreatmentCatalog
from herbful.services.reviews import ReviewService
from herbful.utils.clock import parse_iso

logger = logging.getLogger(__name__)

REVIEW_COLUMNS = ["id", "treatmentId", "treatmentName", "rating", "createdAt"]
REPORT_COLUMNS = [
    "treatmentId", "name", "sourceType",
    "cachedAverage", "cachedTotal",
    "averageRating", "totalReviews",
    "liveTotal", "stale",
]


class RatingAggregator:
    """
    Read-side rating aggregation over treatments and reviews.
    """

    def __init__(self, catalog: TreatmentCatalog, reviews: ReviewService):
        self.catalog = catalog
        self.reviews = reviews

    def reviews_frame(self) -> pd.DataFrame:
        """All reviews as a DataFrame with a lowercased name column for joins."""
        rows = [
            {
                "id": r.id,
                "treatmentId": r.treatment_id,
                "treatmentName": r.treatment_name,
                "rating": r.rating,
                "createdAt": r.created_at,
            }
            for r in self.reviews.all_reviews()
        ]
        frame = pd.DataFrame(rows, columns=REVIEW_COLUMNS).astype({"rating": "int64"})
        frame["nameKey"] = frame["treatmentName"].str.lower()
        return frame

    @staticmethod
    def _summary(ratings: pd.Series) -> RatingSummary:
        if ratings.empty:
            return RatingSummary()
        return RatingSummary(
            total_reviews=int(ratings.count()),
            average_rating=round_rating(float(ratings.mean()))
        )

    def live_rating(self, treatment: Treatment) -> RatingSummary:
        """
        Rating computed on the fly for a treatment's detail view.

        Matches reviews by id or, when ids have drifted, by lowercased
        treatment name. Falls back to the cached values if the reviews
        cannot be read.
        """
        try:
            frame = self.reviews_frame()
        except HerbfulError as e:
            logger.warning(f"Live rating unavailable for {treatment.id}, using cached values: {e}")
            return RatingSummary(treatment.total_reviews, treatment.average_rating)

        mask = (frame["treatmentId"] == treatment.id) | (frame["nameKey"] == treatment.name.lower())
        return self._summary(frame.loc[mask, "rating"])

    def rating_table(self) -> pd.DataFrame:
        """
        Cached versus computed rating for every treatment.

        ``averageRating`` / ``totalReviews`` use the id join (what the
        cache should hold); ``liveTotal`` adds the name fallback; ``stale``
        flags treatments whose cache disagrees with the id join.
        """
        frame = self.reviews_frame()
        by_id = frame.groupby("treatmentId")["rating"].agg(["count", "mean"])

        rows = []
        for treatment in self.catalog.all_treatments():
            if treatment.id in by_id.index:
                total = int(by_id.at[treatment.id, "count"])
                average = round_rating(float(by_id.at[treatment.id, "mean"]))
            else:
                total, average = 0, 0.0

            live_mask = (frame["treatmentId"] == treatment.id) | (frame["nameKey"] == treatment.name.lower())
            rows.append({
                "treatmentId": treatment.id,
                "name": treatment.name,
                "sourceType": treatment.source_type,
                "cachedAverage": treatment.average_rating,
                "cachedTotal": treatment.total_reviews,
                "averageRating": average,
                "totalReviews": total,
                "liveTotal": int(live_mask.sum()),
                "stale": treatment.total_reviews != total or treatment.average_rating != average,
            })

        table = pd.DataFrame(rows, columns=REPORT_COLUMNS)
        if not table.empty:
            table = table.sort_values("name", key=lambda s: s.str.lower()).reset_index(drop=True)
        return table

    def find_stale_ratings(self) -> List[str]:
        """Ids of treatments whose cached rating needs a recompute."""
        table = self.rating_table()
        if table.empty:
            return []
        stale = table.loc[table["stale"], "treatmentId"].tolist()
        if stale:
            logger.warning(f"{len(stale)} treatments have stale cached ratings")
        return stale

    def export_rating_report(self, output_path: str) -> str:
        """
        Write the rating table to CSV.

        Returns:
            Path of the written file
        """
        table = self.rating_table()
        directory = os.path.dirname(output_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        table.to_csv(output_path, index=False)
        logger.info(f"Rating report saved to {output_path} ({len(table)} treatments)")
        return output_path

    def dashboard_summary(self, activity_limit: int = 10) -> Dict:
        """
        Figures for the admin dashboard.

        Returns:
            Dict with totalTreatments, verifiedTreatments, totalReviews and
            recentActivity (newest first): the five newest treatments, the
            three most recently edited ones and the five newest reviews.
        """
        treatments = self.catalog.all_treatments()
        reviews = self.reviews.all_reviews()

        activity = []
        newest = sorted(treatments, key=lambda t: parse_iso(t.created_at), reverse=True)
        for t in newest[:5]:
            activity.append({
                "id": f"treatment-{t.id}",
                "type": "treatment_created",
                "title": "New treatment added",
                "description": f"{t.name} was added to the database",
                "timestamp": t.created_at,
            })

        edited = [t for t in treatments if t.updated_at != t.created_at]
        edited.sort(key=lambda t: parse_iso(t.updated_at), reverse=True)
        for t in edited[:3]:
            activity.append({
                "id": f"treatment-updated-{t.id}",
                "type": "treatment_updated",
                "title": "Treatment updated",
                "description": f"{t.name} was updated",
                "timestamp": t.updated_at,
            })

        recent_reviews = sorted(reviews, key=lambda r: parse_iso(r.created_at), reverse=True)
        for r in recent_reviews[:5]:
            activity.append({
                "id": f"review-{r.id}",
                "type": "review_created",
                "title": "New review",
                "description": f"{r.rating}-star review for {r.treatment_name}",
                "timestamp": r.created_at,
            })

        activity.sort(key=lambda a: parse_iso(a["timestamp"]), reverse=True)
        return {
            "totalTreatments": len(treatments),
            "verifiedTreatments": sum(1 for t in treatments if t.is_verified),
            "totalReviews": len(reviews),
            "recentActivity": activity[:activity_limit],
        }
