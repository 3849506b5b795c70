"""
Offset/limit pagination over an already filtered and sorted list.
"""

import math
from typing import List, Sequence, Tuple, TypeVar

from herbful.errors import ValidationFailed

T = TypeVar("T")


def paginate(items: Sequence[T], page: int, page_size: int) -> Tuple[List[T], int, int]:
    """
    Slice one page out of ``items``.

    Args:
        items: Full filtered, sorted sequence
        page: 1-based page number
        page_size: Items per page

    Returns:
        (page_items, total_count, total_pages). A page past the end yields
        an empty slice but the counts still describe the whole sequence.

    Raises:
        ValidationFailed: If page or page_size is below 1
    """
    errors = {}
    if page < 1:
        errors["page"] = "Page must be at least 1"
    if page_size < 1:
        errors["pageSize"] = "Page size must be at least 1"
    if errors:
        raise ValidationFailed(errors)

    total_count = len(items)
    total_pages = math.ceil(total_count / page_size)
    start = (page - 1) * page_size
    return list(items[start:start + page_size]), total_count, total_pages
