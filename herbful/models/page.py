"""
Paged query results.
"""

from dataclasses import dataclass, field
from typing import Dict, Generic, List, TypeVar

T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    """One page of a filtered, sorted listing."""
    items: List[T] = field(default_factory=list)
    total_count: int = 0  # Size of the filtered set, not the page
    total_pages: int = 0


@dataclass
class ReviewPage(Page):
    stats_total: int = 0  # Reviews in the collection before filtering
    rating_counts: Dict[int, int] = field(default_factory=dict)  # star -> count, after search only
