from __future__ import annotations

from typing import Any, Iterable

from .types import ListingCriteria

# (listing attribute, subscription lower bound, subscription upper bound)
_RANGES: tuple[tuple[str, str, str], ...] = (
    ("rooms", "rooms_min", "rooms_max"),
    ("price", "price_min", "price_max"),
    ("area", "area_min", "area_max"),
    ("floor", "floor_min", "floor_max"),
)

OPEN_ROOM_BUCKET = 3


def in_range(value: Any, lo: Any, hi: Any) -> bool:
    """Inclusive; a None bound is no constraint; an unknown value fails any set bound."""
    if lo is None and hi is None:
        return True
    if value is None:
        return False
    if lo is not None and value < lo:
        return False
    if hi is not None and value > hi:
        return False
    return True


def room_bucket_matches(rooms: int | None, requested: Iterable[int]) -> bool:
    """
    Room buckets: 0 (studio), 1 and 2 match exactly; 3 means "3 or more".
    Unknown room counts match nothing.
    """
    if rooms is None:
        return False
    for r in requested:
        if r >= OPEN_ROOM_BUCKET and rooms >= OPEN_ROOM_BUCKET:
            return True
        if rooms == r:
            return True
    return False


def matches(listing: Any, subscription: Any) -> bool:
    """
    True when `listing` satisfies every bound of `subscription`.

    Works on anything exposing the attributes (ORM rows, ListingData). An empty
    project set on the subscription matches any project.
    """
    project_ids = getattr(subscription, "project_ids", None) or []
    if project_ids and getattr(listing, "project_external_id", None) not in set(project_ids):
        return False

    for attr, lo_attr, hi_attr in _RANGES:
        if not in_range(getattr(listing, attr, None), getattr(subscription, lo_attr, None), getattr(subscription, hi_attr, None)):
            return False
    return True


def criteria_allows(listing: Any, criteria: ListingCriteria | None) -> bool:
    """Client-side re-application of fetch criteria (upstream ignores its own filters at times)."""
    if criteria is None:
        return True
    if not in_range(getattr(listing, "price", None), criteria.price_min, criteria.price_max):
        return False
    if not in_range(getattr(listing, "area", None), criteria.area_min, criteria.area_max):
        return False
    if criteria.rooms and not room_bucket_matches(getattr(listing, "rooms", None), criteria.rooms):
        return False
    return True
