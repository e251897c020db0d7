from __future__ import annotations

from typing import Dict, List, Tuple

from walkpoi.core.errors import UnknownCategory


# ──────────────────────────────────────────────────────────────
# Category taxonomy
# ──────────────────────────────────────────────────────────────
# Each user-facing category maps to a fixed set of OSM (key, value) tags.
# Static configuration: never built from request input.
#
#   restaurants  Sit-down, cafés, bars, takeaway, pubs
#   recreation   Parks & playgrounds
# ──────────────────────────────────────────────────────────────

CATEGORIES: Dict[str, List[Tuple[str, str]]] = {
    "restaurants": [
        ("amenity", "restaurant"),
        ("amenity", "cafe"),
        ("amenity", "bar"),
        ("amenity", "fast_food"),
        ("amenity", "pub"),
    ],
    "recreation": [
        ("leisure", "park"),
        ("leisure", "playground"),
    ],
}


def require_category(category: str) -> str:
    c = (category or "").strip()
    if c not in CATEGORIES:
        raise UnknownCategory(category)
    return c


def category_tags(category: str) -> List[Tuple[str, str]]:
    return list(CATEGORIES[require_category(category)])


def matched_kind(category: str, tags: Dict[str, object]) -> str | None:
    """The single configured tag value an entity matched, e.g. 'cafe'."""
    for key, value in CATEGORIES.get(category, []):
        if tags.get(key) == value:
            return value
    return None
