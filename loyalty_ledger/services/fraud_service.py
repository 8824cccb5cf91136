"""
Advisory fraud flags for purchase claims.

``score_claim`` is pure: it looks only at the claim, a snapshot of the
customer's history and the thresholds. Flags never block approval; they
are stored on the claim and shown to the reviewing vendor.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import func
from sqlalchemy.orm import Session

from loyalty_ledger.config import settings
from loyalty_ledger.models.customer import Customer
from loyalty_ledger.models.purchase import Purchase
from loyalty_ledger.models.purchase_claim import PurchaseClaim
from loyalty_ledger.models.tenant import Tenant


HIGH_AMOUNT = "high_amount"
NEW_CUSTOMER = "new_customer"
NO_RECEIPT = "no_receipt"
HIGH_REJECTION_RATE = "high_rejection_rate"
REPEATED_AMOUNT = "repeated_amount"

ALL_FLAGS = (HIGH_AMOUNT, NEW_CUSTOMER, NO_RECEIPT, HIGH_REJECTION_RATE, REPEATED_AMOUNT)


@dataclass(frozen=True)
class FraudThresholds:
    high_amount_minor: int
    high_amount_multiplier: float
    new_customer_days: int
    new_customer_min_purchases: int
    rejection_rate_percent: float
    repeated_amount_window: int
    repeated_amount_min: int

    @classmethod
    def defaults(cls) -> "FraudThresholds":
        return cls(
            high_amount_minor=settings.fraud_high_amount_minor,
            high_amount_multiplier=settings.fraud_high_amount_multiplier,
            new_customer_days=settings.fraud_new_customer_days,
            new_customer_min_purchases=settings.fraud_new_customer_min_purchases,
            rejection_rate_percent=settings.fraud_rejection_rate_percent,
            repeated_amount_window=settings.fraud_repeated_amount_window,
            repeated_amount_min=settings.fraud_repeated_amount_min,
        )

    @classmethod
    def for_tenant(cls, tenant: Tenant) -> "FraudThresholds":
        base = cls.defaults()
        raw = tenant.settings or {}
        return cls(
            high_amount_minor=int(raw.get("fraud_high_amount_minor", base.high_amount_minor)),
            high_amount_multiplier=float(raw.get("fraud_high_amount_multiplier", base.high_amount_multiplier)),
            new_customer_days=int(raw.get("fraud_new_customer_days", base.new_customer_days)),
            new_customer_min_purchases=int(raw.get("fraud_new_customer_min_purchases", base.new_customer_min_purchases)),
            rejection_rate_percent=float(raw.get("fraud_rejection_rate_percent", base.rejection_rate_percent)),
            repeated_amount_window=int(raw.get("fraud_repeated_amount_window", base.repeated_amount_window)),
            repeated_amount_min=int(raw.get("fraud_repeated_amount_min", base.repeated_amount_min)),
        )


@dataclass(frozen=True)
class ClaimFacts:
    amount_minor: int
    receipt_url: str | None
    submitted_at: datetime


@dataclass(frozen=True)
class CustomerHistory:
    enrolled_at: datetime | None
    purchase_count: int
    average_purchase_minor: int | None
    total_claims: int
    rejected_claims: int
    # most recent first, excluding the claim being scored
    recent_claim_amounts: tuple = field(default_factory=tuple)

    @property
    def rejection_rate(self) -> float:
        if self.total_claims <= 0:
            return 0.0
        return self.rejected_claims / self.total_claims * 100


def score_claim(claim: ClaimFacts, history: CustomerHistory, thresholds: FraudThresholds) -> frozenset:
    flags = set()

    if claim.amount_minor > thresholds.high_amount_minor:
        flags.add(HIGH_AMOUNT)
    elif (
        history.average_purchase_minor
        and thresholds.high_amount_multiplier > 0
        and claim.amount_minor > history.average_purchase_minor * thresholds.high_amount_multiplier
    ):
        flags.add(HIGH_AMOUNT)

    recently_enrolled = (
        history.enrolled_at is not None
        and claim.submitted_at - history.enrolled_at < timedelta(days=thresholds.new_customer_days)
    )
    if recently_enrolled or history.purchase_count < thresholds.new_customer_min_purchases:
        flags.add(NEW_CUSTOMER)

    if not (claim.receipt_url or "").strip():
        flags.add(NO_RECEIPT)

    if history.rejection_rate > thresholds.rejection_rate_percent:
        flags.add(HIGH_REJECTION_RATE)

    # the claim itself counts as one occurrence within the window
    window = max(thresholds.repeated_amount_window - 1, 0)
    matches = 1 + sum(1 for amount in history.recent_claim_amounts[:window] if amount == claim.amount_minor)
    if matches >= max(thresholds.repeated_amount_min, 2):
        flags.add(REPEATED_AMOUNT)

    return frozenset(flags)


def load_customer_history(db: Session, customer: Customer, *, window: int, exclude_claim_id=None) -> CustomerHistory:
    purchase_count, average = (
        db.query(func.count(Purchase.id), func.avg(Purchase.amount_minor))
        .filter(Purchase.customer_id == customer.id)
        .one()
    )

    claims_q = db.query(PurchaseClaim).filter(PurchaseClaim.customer_id == customer.id)
    if exclude_claim_id is not None:
        claims_q = claims_q.filter(PurchaseClaim.id != exclude_claim_id)

    total_claims = claims_q.count()
    rejected_claims = claims_q.filter(PurchaseClaim.status == "rejected").count()

    recent = (
        claims_q.with_entities(PurchaseClaim.amount_minor)
        .order_by(PurchaseClaim.created_at.desc())
        .limit(max(window, 0))
        .all()
    )

    return CustomerHistory(
        enrolled_at=customer.created_at,
        purchase_count=int(purchase_count or 0),
        average_purchase_minor=int(average) if average else None,
        total_claims=total_claims,
        rejected_claims=rejected_claims,
        recent_claim_amounts=tuple(int(r[0]) for r in recent),
    )
