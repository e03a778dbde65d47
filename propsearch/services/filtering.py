"""Pure filtering and multi-key sorting over merged property lists."""

from __future__ import annotations

import functools
import math
from typing import Callable, Dict, Iterable, List, Optional, Set

from ..models.property import NEW_CONSTRUCTION, Property
from ..models.search import FilterSettings, SortOrder

Comparator = Callable[[Property, Property], int]

SINGLE_FAMILY = "Single Family"
ALL_TYPES = "All"


# ---------------------------------------------------------------------------
# Accessors
# ---------------------------------------------------------------------------


def price_of(prop: Property) -> float:
    return prop.price or prop.market_value_estimate or math.inf


def rent_to_price(prop: Property) -> float:
    return 100 * (prop.rent_estimate or 0) / price_of(prop)


def valuation_to_price(prop: Property) -> float:
    return 100 * (prop.market_value_estimate or prop.price or 0) / price_of(prop)


def price_per_sqft(prop: Property) -> float:
    return (prop.price or prop.market_value_estimate or 0) / (prop.living_area or 1)


def commute_minutes(prop: Property) -> Optional[float]:
    if prop.travel_time_seconds is None:
        return None
    return prop.travel_time_seconds / 60


def home_type_label(raw: Optional[str]) -> str:
    """``SINGLE_FAMILY`` -> ``Single Family``."""
    if not raw:
        return ""
    return " ".join(part[:1].upper() + part[1:].lower() for part in raw.split("_") if part)


def computed_metrics(prop: Property) -> Dict[str, Optional[float]]:
    price = price_of(prop)
    return {
        "rent_to_price": rent_to_price(prop) if math.isfinite(price) else None,
        "valuation_to_price": valuation_to_price(prop) if math.isfinite(price) else None,
        "price_per_sqft": price_per_sqft(prop),
        "commute_minutes": commute_minutes(prop),
    }


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------


def default_home_types(properties: Iterable[Property]) -> Set[str]:
    """All observed home type labels, or just Single Family when it is among them."""

    observed = {home_type_label(prop.home_type) for prop in properties} - {""}
    if SINGLE_FAMILY in observed:
        return {SINGLE_FAMILY}
    return observed


def meets_ratio(prop: Property, bounds, rent_only: bool) -> bool:
    """Inclusive rent-to-price band check; undecidable properties pass unless rent is required."""

    if not prop.rent_estimate or prop.rent_estimate <= 0:
        return not rent_only
    if not prop.price and not prop.market_value_estimate:
        return not rent_only
    low, high = bounds
    ratio = rent_to_price(prop)
    return low <= ratio <= high


def filter_properties(properties: List[Property], settings: FilterSettings) -> List[Property]:
    filtered = list(properties)
    if settings.rent_only:
        filtered = [prop for prop in filtered if prop.rent_estimate and prop.rent_estimate > 0]
    if settings.new_construction:
        filtered = [prop for prop in filtered if prop.listing_type == NEW_CONSTRUCTION]
    if not settings.include_land:
        filtered = [prop for prop in filtered if prop.beds and prop.baths]
    if settings.meets_rule is not None:
        filtered = [prop for prop in filtered if meets_ratio(prop, settings.meets_rule, settings.rent_only)]

    selected = set(settings.home_types or []) or default_home_types(properties)
    if selected and ALL_TYPES not in selected:
        filtered = [prop for prop in filtered if home_type_label(prop.home_type) in selected]
    return filtered


# ---------------------------------------------------------------------------
# Sorting
# ---------------------------------------------------------------------------


def _cmp(a: float, b: float) -> int:
    return (a > b) - (a < b)


def _by(accessor: Callable[[Property], float], ascending: bool) -> Comparator:
    sign = 1 if ascending else -1
    return lambda a, b: sign * _cmp(accessor(a), accessor(b))


def _commute(ascending: bool) -> Comparator:
    sign = 1 if ascending else -1

    def compare(a: Property, b: Property) -> int:
        a_time, b_time = a.travel_time_seconds, b.travel_time_seconds
        if a_time is not None and b_time is not None:
            return sign * _cmp(a_time, b_time)
        if a_time is None and b_time is None:
            return 0
        # Missing always sorts after present, whatever the direction.
        return 1 if a_time is None else -1

    return compare


def sort_comparator(order: SortOrder) -> Comparator:
    if order.dimension == "Price":
        return _by(price_of, order.ascending)
    if order.dimension == "Rent/Price Ratio":
        return _by(rent_to_price, order.ascending)
    if order.dimension == "Zestimate/Price Ratio":
        return _by(valuation_to_price, order.ascending)
    if order.dimension == "Price/SqFt":
        return _by(price_per_sqft, order.ascending)
    if order.dimension == "Commute":
        return _commute(order.ascending)
    raise ValueError(f"Unknown sort dimension: {order.dimension}")


def sort_properties(properties: List[Property], orders: List[SortOrder]) -> List[Property]:
    """Stable sorts from the weakest key to priority 0, so priority 0 dominates."""

    result = list(properties)
    for order in sorted(orders, key=lambda o: o.priority, reverse=True):
        result.sort(key=functools.cmp_to_key(sort_comparator(order)))
    return result


def apply(properties: List[Property], settings: FilterSettings) -> List[Property]:
    """Filter then sort; deterministic and free of side effects."""

    return sort_properties(filter_properties(properties, settings), settings.sort_order)


__all__ = [
    "apply",
    "computed_metrics",
    "default_home_types",
    "filter_properties",
    "home_type_label",
    "meets_ratio",
    "sort_properties",
]
