"""
Tests for the redemption lifecycle: reserve, verify, fulfil, cancel, expire.
"""
import re
from datetime import timedelta

import pytest

from loyalty_ledger.errors import (
    AlreadyFulfilledError,
    ConflictError,
    ExpiredError,
    InsufficientPointsError,
    InvalidStateTransitionError,
    NotFoundError,
    RedemptionLimitReachedError,
    RewardUnavailableError,
)
from loyalty_ledger.models.customer import Customer
from loyalty_ledger.models.points_transaction import PointsTransaction
from loyalty_ledger.models.redemption import Redemption
from loyalty_ledger.models.reward import Reward
from loyalty_ledger.models.tenant import Tenant
from loyalty_ledger.services import redemption_service
from loyalty_ledger.services.redemption_service import (
    cancel,
    expire_redemptions,
    fulfill,
    redeem,
    redemption_stats,
    verify,
)
from loyalty_ledger.services.wallet_service import audit_balance, get_balance


@pytest.fixture
def funded(customer, fund):
    fund(customer, 200)
    return customer


class TestRedeem:
    """Tests for redeem."""

    def test_redeem_debits_points_and_reserves_stock(self, db, tenant, funded, make_reward, now):
        reward = make_reward(points_required=50, stock_quantity=3)

        redemption = redeem(db, tenant, funded, reward.id, now=now)
        db.commit()

        assert re.fullmatch(r"R[A-Z0-9]{10}", redemption.redemption_code)
        assert redemption.status == "pending"
        assert redemption.points_used == 50
        assert redemption.expires_at == now + timedelta(hours=24)
        assert get_balance(db, tenant.id, funded.id).current == 150

        db.refresh(reward)
        assert reward.stock_quantity == 2
        assert reward.total_redemptions == 1

        entry = db.query(PointsTransaction).filter_by(customer_id=funded.id, type="redeemed").one()
        assert entry.points == -50
        assert entry.metadata_["redemptionId"] == str(redemption.id)

    def test_insufficient_points(self, db, tenant, customer, fund, make_reward, now):
        fund(customer, 10)
        reward = make_reward(points_required=50, stock_quantity=5)

        with pytest.raises(InsufficientPointsError) as exc:
            redeem(db, tenant, customer, reward.id, now=now)

        assert exc.value.code == "INSUFFICIENT_POINTS"
        db.rollback()
        assert db.get(Reward, reward.id).stock_quantity == 5
        assert get_balance(db, tenant.id, customer.id).current == 10

    def test_zero_stock_is_unavailable_regardless_of_balance(self, db, tenant, customer, fund, make_reward, now):
        fund(customer, 100000)
        reward = make_reward(points_required=50, stock_quantity=0)

        with pytest.raises(RewardUnavailableError):
            redeem(db, tenant, customer, reward.id, now=now)

    def test_inactive_reward_is_unavailable(self, db, tenant, funded, make_reward, now):
        reward = make_reward(is_active=False)
        with pytest.raises(RewardUnavailableError):
            redeem(db, tenant, funded, reward.id, now=now)

    def test_reward_outside_validity_window(self, db, tenant, funded, make_reward, now):
        reward = make_reward(valid_from=now + timedelta(days=1))
        with pytest.raises(RewardUnavailableError):
            redeem(db, tenant, funded, reward.id, now=now)

    def test_per_customer_limit(self, db, tenant, funded, make_reward, now):
        reward = make_reward(points_required=20, max_redemptions_per_customer=1)
        redeem(db, tenant, funded, reward.id, now=now)
        db.commit()

        with pytest.raises(RedemptionLimitReachedError):
            redeem(db, tenant, funded, reward.id, now=now)

    def test_cancelled_redemptions_do_not_count_toward_limit(self, db, tenant, funded, make_reward, now):
        reward = make_reward(points_required=20, max_redemptions_per_customer=1)
        first = redeem(db, tenant, funded, reward.id, now=now)
        cancel(db, tenant, first.id, reason="changed mind", now=now)
        db.commit()

        assert redeem(db, tenant, funded, reward.id, now=now).status == "pending"

    def test_idempotency_key_returns_original(self, db, tenant, funded, make_reward, now):
        reward = make_reward(points_required=50)
        first = redeem(db, tenant, funded, reward.id, idempotency_key="abc-123", now=now)
        db.commit()
        second = redeem(db, tenant, funded, reward.id, idempotency_key="abc-123", now=now)

        assert second.id == first.id
        assert get_balance(db, tenant.id, funded.id).current == 150
        assert db.query(Redemption).count() == 1

    def test_idempotency_key_reuse_for_other_reward(self, db, tenant, funded, make_reward, now):
        first_reward = make_reward(points_required=50)
        other_reward = make_reward(name="Free Drink", points_required=10)
        redeem(db, tenant, funded, first_reward.id, idempotency_key="abc-123", now=now)
        db.commit()

        with pytest.raises(ConflictError):
            redeem(db, tenant, funded, other_reward.id, idempotency_key="abc-123", now=now)


class TestVerifyAndFulfil:
    """Vendor-side verification and fulfilment."""

    def test_verify_normalises_code_and_is_idempotent(self, db, tenant, funded, make_reward, now):
        redemption = redeem(db, tenant, funded, make_reward().id, now=now)
        db.commit()

        first = verify(db, tenant, f"  {redemption.redemption_code.lower()} ", now=now + timedelta(hours=1))
        db.commit()
        verified_at = first.verified_at
        second = verify(db, tenant, redemption.redemption_code, now=now + timedelta(hours=2))

        assert second.id == redemption.id
        assert second.verified_at == verified_at

    def test_verify_unknown_code(self, db, tenant, now):
        with pytest.raises(NotFoundError):
            verify(db, tenant, "RNOTACODE01", now=now)

    def test_fulfil_is_final_and_has_no_ledger_effect(self, db, tenant, funded, make_reward, now):
        redemption = redeem(db, tenant, funded, make_reward().id, now=now)
        db.commit()
        balance = get_balance(db, tenant.id, funded.id).current

        done = fulfill(db, tenant, redemption.id, notes="Served at till 2", now=now + timedelta(hours=1))
        db.commit()

        assert done.status == "fulfilled"
        assert done.fulfilment_notes == "Served at till 2"
        assert get_balance(db, tenant.id, funded.id).current == balance

        with pytest.raises(AlreadyFulfilledError):
            fulfill(db, tenant, redemption.id, now=now)
        with pytest.raises(AlreadyFulfilledError):
            verify(db, tenant, redemption.redemption_code, now=now)
        with pytest.raises(InvalidStateTransitionError):
            cancel(db, tenant, redemption.id, now=now)


class TestCancel:
    """Cancellation refunds the debit and the stock."""

    def test_redeem_then_cancel_restores_balance_and_stock(self, db, tenant, funded, make_reward, now):
        reward = make_reward(points_required=80, stock_quantity=4)
        before = get_balance(db, tenant.id, funded.id).current

        redemption = redeem(db, tenant, funded, reward.id, now=now)
        db.commit()
        cancelled = cancel(db, tenant, redemption.id, reason="Out of rice", now=now + timedelta(hours=2))
        db.commit()

        assert cancelled.status == "cancelled"
        assert cancelled.cancellation_reason == "Out of rice"
        assert get_balance(db, tenant.id, funded.id).current == before
        db.refresh(reward)
        assert reward.stock_quantity == 4
        assert reward.total_redemptions == 0
        assert audit_balance(db, tenant.id, funded.id)["consistent"] is True

    def test_cancel_twice(self, db, tenant, funded, make_reward, now):
        redemption = redeem(db, tenant, funded, make_reward().id, now=now)
        cancel(db, tenant, redemption.id, now=now)
        db.commit()

        with pytest.raises(InvalidStateTransitionError):
            cancel(db, tenant, redemption.id, now=now)


class TestExpiry:
    """Pending redemptions past expires_at are expired and refunded."""

    def test_sweep_expires_and_refunds(self, db, tenant, funded, make_reward, now):
        reward = make_reward(points_required=60, stock_quantity=1)
        before = get_balance(db, tenant.id, funded.id).current

        redemption = redeem(db, tenant, funded, reward.id, now=now)
        db.commit()
        assert expire_redemptions(db, now=now + timedelta(hours=23)) == 0

        assert expire_redemptions(db, now=now + timedelta(hours=25)) == 1
        db.commit()

        db.refresh(redemption)
        db.refresh(reward)
        assert redemption.status == "expired"
        assert get_balance(db, tenant.id, funded.id).current == before
        assert reward.stock_quantity == 1

    def test_lazy_expiry_on_verify(self, db, tenant, funded, make_reward, now):
        before = get_balance(db, tenant.id, funded.id).current
        redemption = redeem(db, tenant, funded, make_reward().id, now=now)
        db.commit()

        with pytest.raises(ExpiredError):
            verify(db, tenant, redemption.redemption_code, now=now + timedelta(hours=25))

        db.expire_all()
        assert db.get(Redemption, redemption.id).status == "expired"
        assert get_balance(db, tenant.id, funded.id).current == before

    def test_lazy_expiry_blocks_fulfilment(self, db, tenant, funded, make_reward, now):
        redemption = redeem(db, tenant, funded, make_reward().id, now=now)
        db.commit()

        with pytest.raises(ExpiredError):
            fulfill(db, tenant, redemption.id, now=now + timedelta(hours=24))


class TestConcurrentRequests:
    """A rival request commits while this one is between its read and its write."""

    def test_limit_is_counted_after_the_balance_lock(self, db, session_factory, monkeypatch, tenant, funded, make_reward, now):
        reward = make_reward(points_required=50, stock_quantity=5, max_redemptions_per_customer=1)
        real_lock = redemption_service.lock_balance
        rival_ran = []

        def lock_after_rival(session, tenant_id, customer_id):
            if not rival_ran:
                rival_ran.append(True)
                rival = session_factory()
                try:
                    redeem(rival, rival.get(Tenant, tenant.id), rival.get(Customer, funded.id), reward.id, now=now)
                    rival.commit()
                finally:
                    rival.close()
            return real_lock(session, tenant_id, customer_id)

        monkeypatch.setattr(redemption_service, "lock_balance", lock_after_rival)

        with pytest.raises(RedemptionLimitReachedError):
            redeem(db, tenant, funded, reward.id, now=now)
        db.rollback()

        assert db.query(Redemption).filter_by(customer_id=funded.id, status="pending").count() == 1
        assert get_balance(db, tenant.id, funded.id).current == 150
        db.refresh(reward)
        assert reward.stock_quantity == 4

    def test_cancel_losing_to_fulfilment_refunds_nothing(self, db, session_factory, monkeypatch, tenant, funded, make_reward, now):
        redemption = redeem(db, tenant, funded, make_reward().id, now=now)
        db.commit()
        real_get = redemption_service.get_redemption
        rival_ran = []

        def get_then_rival_fulfils(session, tenant_id, redemption_id):
            found = real_get(session, tenant_id, redemption_id)
            if not rival_ran:
                rival_ran.append(True)
                rival = session_factory()
                try:
                    fulfill(rival, rival.get(Tenant, tenant.id), redemption_id, now=now)
                    rival.commit()
                finally:
                    rival.close()
            return found

        monkeypatch.setattr(redemption_service, "get_redemption", get_then_rival_fulfils)

        with pytest.raises(InvalidStateTransitionError):
            cancel(db, tenant, redemption.id, now=now)
        db.rollback()

        db.refresh(redemption)
        assert redemption.status == "fulfilled"
        assert get_balance(db, tenant.id, funded.id).current == 150
        assert db.query(PointsTransaction).filter_by(customer_id=funded.id, type="adjusted").count() == 1

    def test_overdue_hold_releases_last_unit(self, db, tenant, funded, make_customer, fund, make_reward, now):
        reward = make_reward(points_required=50, stock_quantity=1)
        first = redeem(db, tenant, funded, reward.id, now=now)
        db.commit()

        other = make_customer(first_name="Bisi")
        fund(other, 100)
        later = now + timedelta(hours=25)
        second = redeem(db, tenant, other, reward.id, now=later)
        db.commit()

        db.refresh(first)
        db.refresh(reward)
        assert first.status == "expired"
        assert second.status == "pending"
        assert reward.stock_quantity == 0
        assert get_balance(db, tenant.id, funded.id).current == 200


class TestStats:
    def test_counts_per_status(self, db, tenant, funded, make_reward, now):
        reward = make_reward(points_required=10)
        done = redeem(db, tenant, funded, reward.id, now=now)
        fulfill(db, tenant, done.id, now=now)
        gone = redeem(db, tenant, funded, reward.id, now=now)
        cancel(db, tenant, gone.id, now=now)
        redeem(db, tenant, funded, reward.id, now=now)
        db.commit()

        stats = redemption_stats(db, tenant.id, now=now)

        assert stats["total"] == 3
        assert stats["pending"] == 1
        assert stats["fulfilled"] == 1
        assert stats["cancelled"] == 1
        assert stats["completionRate"] == 33.3
        assert stats["pointsRedeemed"] == 20
