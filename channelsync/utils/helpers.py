"""
Helper utilities
"""
from math import ceil
from typing import Any, Dict, List, Sequence


def chunk_list(lst: List, chunk_size: int) -> List[List]:
    """Split list into chunks"""
    if chunk_size < 1:
        raise ValueError("chunk_size must be positive")
    return [lst[i:i + chunk_size] for i in range(0, len(lst), chunk_size)]


def paginate(items: Sequence[Any], page: int = 1, per_page: int = 25) -> Dict[str, Any]:
    """Slice a merged result for the dashboard tables (1-indexed pages)"""
    page = max(page, 1)
    per_page = max(per_page, 1)
    total = len(items)
    start = (page - 1) * per_page
    return {
        "items": list(items[start:start + per_page]),
        "page": page,
        "per_page": per_page,
        "total": total,
        "total_pages": ceil(total / per_page) if total else 0,
    }
