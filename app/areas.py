from __future__ import annotations

from typing import Dict, Iterable, List, Optional


FOH = "FOH"
BOH = "BOH"
AREAS = (FOH, BOH)

CATEGORY_GROUPS: Dict[str, List[str]] = {
    FOH: [
        "Front Counter",
        "Drive Thru",
    ],
    BOH: [
        "Kitchen",
    ],
}

_AREA_ALIASES: Dict[str, str] = {
    "foh": FOH,
    "front of house": FOH,
    "front": FOH,
    "service": FOH,
    "boh": BOH,
    "back of house": BOH,
    "back": BOH,
    "kitchen": BOH,
    "hoh": BOH,
    "heart of house": BOH,
}

# Category labels that name an area outright.
_AREA_CATEGORIES: Dict[str, str] = {
    "foh": FOH,
    "boh": BOH,
}


def normalize_category(category: Optional[str]) -> str:
    return (category or "").strip().lower()


def normalize_area(value: Optional[str]) -> Optional[str]:
    """Return FOH/BOH for any spelling uploads use, or None when unknown."""
    label = (value or "").strip().lower()
    if not label:
        return None
    if label in _AREA_ALIASES:
        return _AREA_ALIASES[label]
    return None


def section_for_category(category: Optional[str]) -> str:
    """Kitchen positions belong to BOH; every other category is FOH."""
    if normalize_category(category) == "kitchen":
        return BOH
    return FOH


def category_area(category: Optional[str]) -> Optional[str]:
    """Area implied by a known category name, None for categories with no rule."""
    label = normalize_category(category)
    if not label:
        return None
    for area, names in CATEGORY_GROUPS.items():
        for name in names:
            if label == normalize_category(name):
                return area
    return _AREA_CATEGORIES.get(label)


def required_area(category: Optional[str], section: Optional[str] = None) -> Optional[str]:
    """Area an employee must belong to before filling a position, if any.

    The section only decides for positions without a category; categories with
    no area rule (breaks, training) accept anyone.
    """
    if normalize_category(category):
        return category_area(category)
    return normalize_area(section)


def filter_by_area(employees: Iterable, tab: Optional[str]) -> List:
    """Keep employees in the requested area tab ("all" keeps everyone)."""
    items = list(employees)
    area = normalize_area(tab)
    if area is None:
        return items
    return [employee for employee in items if getattr(employee, "area", None) == area]
