"""
Tests for the fixed earn-rate table and point valuation.
"""
from decimal import Decimal

import pytest

from loyalty_ledger.errors import ValidationError
from loyalty_ledger.services.earn_rate_service import (
    minimum_reward_value_minor,
    point_value,
    points_for_amount,
    points_for_tenant_amount,
    suggested_points,
    validate_burn_rate,
)


class TestPointsForAmount:
    """Purchase amount (minor units) to points."""

    def test_naira_uses_one_thousand_naira_per_point(self):
        """150000 kobo is NGN 1,500, which earns one point."""
        assert points_for_amount("NGN", 150000) == 1
        assert points_for_amount("NGN", 500000) == 5

    def test_naira_below_one_unit_earns_nothing(self):
        assert points_for_amount("NGN", 99999) == 0

    def test_pounds_earn_one_point_per_pound(self):
        """550 pence is GBP 5.50, which floors to five points."""
        assert points_for_amount("GBP", 550) == 5

    @pytest.mark.parametrize("currency", ["USD", "EUR", "usd"])
    def test_other_currencies_earn_per_major_unit(self, currency):
        assert points_for_amount(currency, 1999) == 19

    def test_unsupported_currency_rejected(self):
        with pytest.raises(ValidationError):
            points_for_amount("JPY", 1000)

    def test_negative_amount_rejected(self):
        with pytest.raises(ValidationError):
            points_for_amount("GBP", -1)

    def test_tenant_currency_is_used(self, db, gbp_tenant):
        assert points_for_tenant_amount(db, gbp_tenant.id, 1250) == 12


class TestPointValue:
    """Burn rate, point value and reward pricing helpers."""

    def test_default_point_value(self):
        assert point_value("NGN") == Decimal("10")
        assert point_value("GBP") == Decimal("0.01")

    def test_point_value_scales_with_burn_rate(self):
        assert point_value("NGN", "0.05") == Decimal("50")

    def test_burn_rate_bounds(self):
        assert validate_burn_rate("0.03") == Decimal("0.03")
        with pytest.raises(ValidationError):
            validate_burn_rate("0.005")
        with pytest.raises(ValidationError):
            validate_burn_rate("0.2")
        with pytest.raises(ValidationError):
            validate_burn_rate("abc")

    def test_suggested_points_rounds_up(self):
        assert suggested_points(500, "NGN") == 50
        assert suggested_points(15, "NGN", "0.02") == 1
        assert suggested_points(5, "GBP") == 500

    def test_suggested_points_has_a_floor_of_one(self):
        assert suggested_points(0, "NGN") == 1

    def test_minimum_reward_values(self):
        assert minimum_reward_value_minor("NGN") == 50000
        assert minimum_reward_value_minor("GBP") == 500
