"""
Unit tests for the Rating Aggregator.
"""

import os
import tempfile
from unittest.mock import patch

import pandas as pd
import pytest

from herbful.errors import UpstreamReadFailed
from herbful.models.review import RatingSummary
from herbful.models.treatment import VERIFIED_SOURCE
from herbful.registry.symptom_index import SymptomIndex
from herbful.services.aggregation import REPORT_COLUMNS, RatingAggregator
from herbful.services.catalog import TreatmentCatalog
from herbful.services.reviews import ReviewService
from herbful.utils.storage import TreeStore


def treatment_fields(name, **overrides):
    fields = {
        "name": name,
        "preparation": ["Crush the leaves"],
        "usage": "Apply to the affected area twice a day",
        "dosage": "Thin layer",
        "benefits": ["Soothes skin"],
    }
    fields.update(overrides)
    return fields


@pytest.fixture
def aggregator():
    store = TreeStore()
    catalog = TreatmentCatalog(store, SymptomIndex(store))
    reviews = ReviewService(store)
    catalog.create_treatment(treatment_fields("Aloe Gel"))
    catalog.create_treatment(treatment_fields(
        "Sambong Tea",
        source_type=VERIFIED_SOURCE,
        sources=[{
            "authority": "DOH",
            "url": "https://doh.gov.ph/herbal",
            "description": "Approved herbal medicine",
            "verificationDate": "2023-05-01",
        }]
    ))
    return RatingAggregator(catalog, reviews)


def test_empty_reviews_frame():
    """Test that an empty collection yields an empty frame with all columns."""
    store = TreeStore()
    aggregator = RatingAggregator(
        TreatmentCatalog(store, SymptomIndex(store)), ReviewService(store)
    )
    frame = aggregator.reviews_frame()

    assert frame.empty
    assert "nameKey" in frame.columns
    assert aggregator.rating_table().empty
    assert aggregator.find_stale_ratings() == []


def test_live_rating_uses_name_fallback(aggregator):
    """Test that reviews with a drifted id still count by treatment name."""
    aggregator.reviews.create_review({"treatment_id": "aloe-gel", "rating": 4})
    aggregator.reviews.store.set("reviews/legacy", {
        "treatmentId": "aloe-vera-gel",
        "treatmentName": "ALOE GEL",
        "rating": 5,
        "createdAt": "2023-01-01T00:00:00.000Z",
    })

    treatment = aggregator.catalog.get_treatment("aloe-gel")
    assert aggregator.live_rating(treatment) == RatingSummary(2, 4.5)
    # The cached value only counts the id link
    assert treatment.total_reviews == 1


def test_live_rating_falls_back_to_cache(aggregator):
    """Test that a read failure returns the cached rating."""
    aggregator.reviews.create_review({"treatment_id": "aloe-gel", "rating": 3})
    treatment = aggregator.catalog.get_treatment("aloe-gel")

    with patch.object(aggregator.reviews, "all_reviews", side_effect=UpstreamReadFailed("offline")):
        assert aggregator.live_rating(treatment) == RatingSummary(1, 3.0)


def test_rating_table_flags_stale(aggregator):
    """Test detection of cached ratings that disagree with the reviews."""
    aggregator.reviews.create_review({"treatment_id": "aloe-gel", "rating": 5})
    aggregator.reviews.create_review({"treatment_id": "sambong-tea", "rating": 2})
    aggregator.reviews.store.update("treatments/sambong-tea", {"totalReviews": 7})

    table = aggregator.rating_table()
    assert list(table.columns) == REPORT_COLUMNS
    assert table["name"].tolist() == ["Aloe Gel", "Sambong Tea"]
    assert table["stale"].tolist() == [False, True]
    assert aggregator.find_stale_ratings() == ["sambong-tea"]

    aggregator.reviews.repair_ratings()
    assert aggregator.find_stale_ratings() == []


def test_export_rating_report(aggregator):
    """Test CSV export of the rating table."""
    aggregator.reviews.create_review({"treatment_id": "aloe-gel", "rating": 4})

    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "reports", "ratings.csv")
        assert aggregator.export_rating_report(path) == path

        report = pd.read_csv(path)
        assert list(report.columns) == REPORT_COLUMNS
        aloe = report[report["treatmentId"] == "aloe-gel"].iloc[0]
        assert aloe["averageRating"] == 4.0
        assert aloe["totalReviews"] == 1


def test_dashboard_summary(aggregator):
    """Test dashboard counts and the recent activity feed."""
    aggregator.reviews.create_review({"treatment_id": "aloe-gel", "rating": 5})
    aggregator.reviews.create_review({"treatment_id": "sambong-tea", "rating": 3})

    summary = aggregator.dashboard_summary(activity_limit=3)

    assert summary["totalTreatments"] == 2
    assert summary["verifiedTreatments"] == 1
    assert summary["totalReviews"] == 2
    assert len(summary["recentActivity"]) == 3
    types = {a["type"] for a in aggregator.dashboard_summary()["recentActivity"]}
    assert {"treatment_created", "review_created"} <= types


# Run tests if executed directly
if __name__ == "__main__":
    pytest.main([__file__, "-v"])
