"""
Tests for the expiry sweep run by the worker loop and POST /admin/expire.
"""
from datetime import datetime, timedelta

from loyalty_ledger.models.notification_outbox import NotificationOutbox
from loyalty_ledger.models.purchase_claim import PurchaseClaim
from loyalty_ledger.models.redemption import Redemption
from loyalty_ledger.services.claim_service import submit_claim
from loyalty_ledger.services.expiry_worker import compute_next_run_at, run_sweep_once
from loyalty_ledger.services.redemption_service import redeem
from loyalty_ledger.services.wallet_service import get_balance


class FakeGateway:
    def __init__(self):
        self.sent = []

    def send(self, phone_number, message):
        self.sent.append(phone_number)


class BrokenSessionFactory:
    """Fails only the first session handed out."""

    def __init__(self, factory):
        self.factory = factory
        self.calls = 0

    def __call__(self):
        self.calls += 1
        session = self.factory()
        if self.calls == 1:
            def boom(*args, **kwargs):
                raise RuntimeError("db went away")

            session.query = boom
        return session


class TestRunSweepOnce:
    def test_sweep_expires_refunds_and_dispatches(self, db, session_factory, tenant, customer, fund, make_reward, now):
        fund(customer, 100)
        redemption = redeem(db, tenant, customer, make_reward(points_required=40).id, now=now)
        claim = submit_claim(
            db,
            vendor_code=tenant.vendor_code,
            phone_number=customer.phone_number,
            amount_minor=200000,
            purchase_date=now - timedelta(hours=1),
            now=now,
        )
        db.commit()
        gateway = FakeGateway()

        stats = run_sweep_once(session_factory, gateway=gateway, now=now + timedelta(hours=49))

        assert stats.redemptions_expired == 1
        assert stats.claims_expired == 1
        assert stats.failed_steps == []
        assert stats.notifications["sent"] == len(gateway.sent) > 0

        db.expire_all()
        assert db.get(Redemption, redemption.id).status == "expired"
        assert db.get(PurchaseClaim, claim.id).status == "expired"
        assert get_balance(db, tenant.id, customer.id).current == 100
        assert db.query(NotificationOutbox).filter_by(status="pending").count() == 0

    def test_failing_step_does_not_stop_the_rest(self, db, session_factory, tenant, customer, now):
        submit_claim(
            db,
            vendor_code=tenant.vendor_code,
            phone_number=customer.phone_number,
            amount_minor=200000,
            purchase_date=now - timedelta(hours=1),
            now=now,
        )
        db.commit()

        stats = run_sweep_once(BrokenSessionFactory(session_factory), gateway=None, now=now + timedelta(hours=49))

        assert stats.failed_steps == ["expire_redemptions"]
        assert stats.claims_expired == 1


class TestSchedule:
    def test_next_run_follows_cron(self):
        base = datetime(2026, 3, 2, 12, 3, 10)
        assert compute_next_run_at(base_utc=base, cron_expr="*/5 * * * *") == datetime(2026, 3, 2, 12, 5)


class TestAdminExpireEndpoint:
    def test_runs_one_sweep(self, client, headers):
        response = client.post("/admin/expire", headers=headers)

        assert response.status_code == 200
        body = response.json()
        assert body["redemptionsExpired"] == 0
        assert body["pointsExpired"] == 0
        assert body["failedSteps"] == []
