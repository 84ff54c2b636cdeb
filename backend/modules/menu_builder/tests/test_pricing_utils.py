# backend/modules/menu_builder/tests/test_pricing_utils.py

import pytest

from core.exceptions import MenuValidationError
from modules.menu_builder.utils.pricing_utils import (
    has_drifted,
    normalize_actual_price,
    price_delta,
    round_price,
)


class TestNormalizeActualPrice:
    @pytest.mark.parametrize(
        "price, recommended, expected",
        [
            (12.00, 12.00, None),
            (12.01, 12.00, None),
            (11.99, 12.00, None),
            (12.02, 12.00, 12.02),
            (9.5, None, 9.5),
            (None, 12.00, None),
            ("14.5", 12.00, 14.5),
            (0, 3.0, 0.0),
        ],
    )
    def test_normalization(self, price, recommended, expected):
        assert normalize_actual_price(price, recommended, tolerance=0.01) == expected

    @pytest.mark.parametrize("price", ["abc", -1, float("nan"), [1]])
    def test_invalid_price(self, price):
        with pytest.raises(MenuValidationError):
            normalize_actual_price(price, 10.0, tolerance=0.01)


class TestPriceDrift:
    def test_delta_rounds_to_cents(self):
        assert price_delta(12.0, 13.5) == 1.5
        assert price_delta(10.1, 10.3) == 0.2
        assert round_price(13.999) == 14.0

    def test_has_drifted(self):
        assert has_drifted(12.0, 12.01, tolerance=0.005)
        assert not has_drifted(12.0, 12.004, tolerance=0.005)
        assert not has_drifted(12.0, 12.0, tolerance=0.005)
