"""backend/modules/menu_builder/utils/pricing_utils.py

Helpers for the two price rules of the menu builder: an actual selling
price that matches the recommended price is not stored as an override,
and recalculated prices are compared against the lock-time baseline.
"""

from typing import Optional

from core.config import settings
from core.exceptions import MenuValidationError

__all__ = [
    "round_price",
    "normalize_actual_price",
    "price_delta",
    "has_drifted",
]

# absorbs float representation noise at the tolerance boundary
_EPSILON = 1e-9


def round_price(value: float) -> float:
    return round(float(value), 2)


def normalize_actual_price(
    price: Optional[float],
    recommended: Optional[float],
    tolerance: Optional[float] = None,
) -> Optional[float]:
    """Return the value to persist as ``actual_selling_price``.

    ``None`` means "use the recommended price". A typed price within the
    tolerance (one cent by default) of the recommended price collapses to
    ``None`` so the item keeps following recipe cost changes.
    """
    if price is None:
        return None

    try:
        value = float(price)
    except (TypeError, ValueError):
        raise MenuValidationError(
            "Price must be a number", details={"price": price}
        )
    if value != value or value < 0:
        raise MenuValidationError(
            "Price must be a non-negative number", details={"price": price}
        )

    if tolerance is None:
        tolerance = settings.price_match_tolerance
    if recommended is not None and abs(value - recommended) <= tolerance + _EPSILON:
        return None
    return round_price(value)


def price_delta(previous: float, new: float) -> float:
    return round_price(new - previous)


def has_drifted(previous: float, new: float, tolerance: Optional[float] = None) -> bool:
    if tolerance is None:
        tolerance = settings.price_drift_tolerance
    return abs(new - previous) > tolerance + _EPSILON
