"""
Tests for the advisory fraud heuristics.
"""
from datetime import datetime, timedelta

import pytest

from loyalty_ledger.services.fraud_service import (
    HIGH_AMOUNT,
    HIGH_REJECTION_RATE,
    NEW_CUSTOMER,
    NO_RECEIPT,
    REPEATED_AMOUNT,
    ClaimFacts,
    CustomerHistory,
    FraudThresholds,
    score_claim,
)
from loyalty_ledger.services.tenant_service import update_settings


SUBMITTED = datetime(2026, 3, 2, 12, 0, 0)

THRESHOLDS = FraudThresholds(
    high_amount_minor=1_000_000,
    high_amount_multiplier=3.0,
    new_customer_days=7,
    new_customer_min_purchases=3,
    rejection_rate_percent=30.0,
    repeated_amount_window=5,
    repeated_amount_min=3,
)


def _history(**overrides):
    values = dict(
        enrolled_at=SUBMITTED - timedelta(days=90),
        purchase_count=10,
        average_purchase_minor=200_000,
        total_claims=0,
        rejected_claims=0,
        recent_claim_amounts=(),
    )
    values.update(overrides)
    return CustomerHistory(**values)


def _claim(amount=150_000, receipt_url="https://r.example/1.jpg"):
    return ClaimFacts(amount_minor=amount, receipt_url=receipt_url, submitted_at=SUBMITTED)


class TestScoreClaim:
    """Tests for the pure score_claim function."""

    def test_established_customer_with_receipt_is_clean(self):
        assert score_claim(_claim(), _history(), THRESHOLDS) == frozenset()

    @pytest.mark.parametrize("receipt", [None, "", "   "])
    def test_missing_receipt(self, receipt):
        assert NO_RECEIPT in score_claim(_claim(receipt_url=receipt), _history(), THRESHOLDS)

    def test_high_amount_absolute_cap(self):
        flags = score_claim(_claim(amount=1_000_001), _history(average_purchase_minor=None), THRESHOLDS)
        assert HIGH_AMOUNT in flags

    def test_high_amount_relative_to_average_spend(self):
        assert HIGH_AMOUNT in score_claim(_claim(amount=600_001), _history(), THRESHOLDS)
        assert HIGH_AMOUNT not in score_claim(_claim(amount=600_000), _history(), THRESHOLDS)

    def test_new_customer_by_enrollment_date(self):
        flags = score_claim(_claim(), _history(enrolled_at=SUBMITTED - timedelta(days=2)), THRESHOLDS)
        assert NEW_CUSTOMER in flags

    def test_new_customer_by_purchase_count(self):
        assert NEW_CUSTOMER in score_claim(_claim(), _history(purchase_count=2), THRESHOLDS)

    def test_rejection_rate_must_exceed_threshold(self):
        assert HIGH_REJECTION_RATE in score_claim(_claim(), _history(total_claims=10, rejected_claims=4), THRESHOLDS)
        assert HIGH_REJECTION_RATE not in score_claim(_claim(), _history(total_claims=10, rejected_claims=3), THRESHOLDS)

    def test_repeated_amount(self):
        history = _history(recent_claim_amounts=(150_000, 150_000, 90_000))
        assert REPEATED_AMOUNT in score_claim(_claim(amount=150_000), history, THRESHOLDS)

    def test_repeated_amount_needs_enough_matches(self):
        history = _history(recent_claim_amounts=(150_000, 90_000))
        assert REPEATED_AMOUNT not in score_claim(_claim(amount=150_000), history, THRESHOLDS)


class TestThresholds:
    """Per-tenant threshold overrides."""

    def test_tenant_overrides_defaults(self, db, tenant):
        update_settings(db, tenant, changes={"fraud_high_amount_minor": 5000, "fraud_rejection_rate_percent": 10})
        thresholds = FraudThresholds.for_tenant(tenant)

        assert thresholds.high_amount_minor == 5000
        assert thresholds.rejection_rate_percent == 10.0
        assert thresholds.repeated_amount_window == FraudThresholds.defaults().repeated_amount_window
