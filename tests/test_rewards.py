"""
Tests for reward catalog validation and soft delete.
"""
from datetime import datetime

import pytest

from loyalty_ledger.errors import NotFoundError, ValidationError
from loyalty_ledger.services.reward_service import (
    create_reward,
    delete_reward,
    get_reward,
    list_rewards,
    update_reward,
)


class TestCreateReward:
    """Catalog validation runs server-side for every write."""

    def test_create_minimal_reward(self, db, tenant):
        reward = create_reward(db, tenant, {"name": "  Free Chapman ", "points_required": 30})

        assert reward.name == "Free Chapman"
        assert reward.is_active is True
        assert reward.stock_quantity is None
        assert reward.total_redemptions == 0

    @pytest.mark.parametrize(
        "values",
        [
            {"name": "x", "points_required": 0},
            {"name": "x", "points_required": -10},
            {"name": "", "points_required": 10},
            {"name": "x", "points_required": 10, "stock_quantity": -1},
            {"name": "x", "points_required": 10, "max_redemptions_per_customer": -1},
            {
                "name": "x",
                "points_required": 10,
                "valid_from": datetime(2026, 5, 1),
                "valid_until": datetime(2026, 4, 1),
            },
        ],
    )
    def test_invalid_values_rejected(self, db, tenant, values):
        with pytest.raises(ValidationError):
            create_reward(db, tenant, values)

    def test_monetary_value_below_currency_minimum(self, db, tenant):
        with pytest.raises(ValidationError):
            create_reward(db, tenant, {"name": "Cheap", "points_required": 5, "monetary_value_minor": 10000})

        reward = create_reward(db, tenant, {"name": "Fair", "points_required": 50, "monetary_value_minor": 50000})
        assert reward.monetary_value_minor == 50000


class TestUpdateAndDelete:
    def test_update_validates_merged_values(self, db, tenant, make_reward):
        reward = make_reward(valid_until=datetime(2026, 6, 1))

        with pytest.raises(ValidationError):
            update_reward(db, tenant, reward.id, {"valid_from": datetime(2026, 7, 1)})

        updated = update_reward(db, tenant, reward.id, {"points_required": 75, "stock_quantity": 10})
        assert updated.points_required == 75
        assert updated.stock_quantity == 10

    def test_update_unknown_field(self, db, tenant, make_reward):
        reward = make_reward()
        with pytest.raises(ValidationError):
            update_reward(db, tenant, reward.id, {"total_redemptions": 99})

    def test_soft_delete_hides_reward(self, db, tenant, make_reward):
        reward = make_reward()
        delete_reward(db, tenant.id, reward.id)
        db.commit()

        with pytest.raises(NotFoundError):
            get_reward(db, tenant.id, reward.id)
        items, total = list_rewards(db, tenant.id)
        assert total == 0

    def test_rewards_are_tenant_scoped(self, db, tenant, gbp_tenant, make_reward):
        reward = make_reward()
        with pytest.raises(NotFoundError):
            get_reward(db, gbp_tenant.id, reward.id)
