import logging
from datetime import date, datetime, time, timedelta

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from loyalty_ledger.config import settings
from loyalty_ledger.db import utcnow
from loyalty_ledger.errors import (
    AlreadyReviewedError,
    ConflictError,
    ExpiredError,
    NotFoundError,
    RateLimitError,
    ValidationError,
)
from loyalty_ledger.models.customer import Customer
from loyalty_ledger.models.purchase import Purchase
from loyalty_ledger.models.purchase_claim import PurchaseClaim
from loyalty_ledger.models.tenant import Tenant
from loyalty_ledger.services.contact_service import (
    can_accrue_points,
    find_customer_by_phone,
    record_purchase_stats,
)
from loyalty_ledger.services.earn_rate_service import points_for_amount
from loyalty_ledger.services.fraud_service import (
    ClaimFacts,
    FraudThresholds,
    load_customer_history,
    score_claim,
)
from loyalty_ledger.services.loyalty_service import earn_points
from loyalty_ledger.services.notification_service import enqueue_notification
from loyalty_ledger.services.tenant_service import get_tenant_by_vendor_code


logger = logging.getLogger(__name__)

DEFAULT_CHANNEL = "physical_store"
REVIEW_ACTIONS = ("approve", "reject")


def _as_datetime(value) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    raise ValidationError("Purchase date is required", field="purchase_date")


def get_claim(db: Session, tenant_id, claim_id) -> PurchaseClaim:
    claim = (
        db.query(PurchaseClaim)
        .filter(PurchaseClaim.id == claim_id, PurchaseClaim.tenant_id == tenant_id)
        .first()
    )
    if not claim:
        raise NotFoundError("Claim", claim_id)
    return claim


# ============================================================
# SUBMIT
# ============================================================

def submit_claim(
    db: Session,
    *,
    vendor_code: str,
    phone_number: str,
    amount_minor: int,
    purchase_date,
    channel: str | None = None,
    receipt_url: str | None = None,
    description: str | None = None,
    now: datetime | None = None,
) -> PurchaseClaim:
    if now is None:
        now = utcnow()

    tenant = get_tenant_by_vendor_code(db, vendor_code)
    customer = find_customer_by_phone(db, tenant.id, phone_number)
    if not customer:
        raise NotFoundError("Customer", phone_number)

    if amount_minor is None or int(amount_minor) <= 0:
        raise ValidationError("Amount must be greater than zero", field="amount")
    amount_minor = int(amount_minor)

    purchase_at = _as_datetime(purchase_date)
    if purchase_at > now:
        raise ValidationError("Purchase date cannot be in the future", field="purchase_date")
    oldest = datetime.combine((now - timedelta(days=settings.claim_max_age_days)).date(), time.min)
    if purchase_at < oldest:
        raise ValidationError(
            f"Claims can only be submitted for purchases within the last {settings.claim_max_age_days} days",
            field="purchase_date",
        )

    channel = (channel or DEFAULT_CHANNEL).strip() or DEFAULT_CHANNEL

    day_start = datetime.combine(now.date(), time.min)
    today = (
        db.query(func.count(PurchaseClaim.id))
        .filter(PurchaseClaim.customer_id == customer.id)
        .filter(PurchaseClaim.created_at >= day_start)
        .scalar()
    )
    if today >= settings.claim_daily_limit:
        raise RateLimitError(
            f"Daily claim limit reached ({settings.claim_daily_limit} per day). Please try again tomorrow."
        )

    duplicate = (
        db.query(PurchaseClaim.id)
        .filter(
            PurchaseClaim.customer_id == customer.id,
            PurchaseClaim.amount_minor == amount_minor,
            PurchaseClaim.purchase_date == purchase_at,
            PurchaseClaim.channel == channel,
            PurchaseClaim.created_at >= now - timedelta(minutes=settings.claim_duplicate_window_minutes),
        )
        .first()
    )
    if duplicate:
        raise ConflictError("A similar claim was submitted recently. Please wait before resubmitting.")

    thresholds = FraudThresholds.for_tenant(tenant)
    history = load_customer_history(db, customer, window=thresholds.repeated_amount_window)
    flags = score_claim(
        ClaimFacts(amount_minor=amount_minor, receipt_url=receipt_url, submitted_at=now),
        history,
        thresholds,
    )

    claim = PurchaseClaim(
        tenant_id=tenant.id,
        customer_id=customer.id,
        phone_number=customer.phone_number,
        amount_minor=amount_minor,
        purchase_date=purchase_at,
        channel=channel,
        receipt_url=(receipt_url or "").strip() or None,
        description=description,
        fraud_flags=sorted(flags),
        status="pending",
        expires_at=now + timedelta(hours=settings.claim_expiry_hours),
        created_at=now,
    )
    db.add(claim)
    db.flush()

    enqueue_notification(
        db,
        tenant=tenant,
        customer=customer,
        kind="claim_submitted",
        message=(
            "Your purchase claim has been submitted and is awaiting review.\n"
            "You will be notified once it is approved."
        ),
    )

    logger.info(
        "claim submitted",
        extra={"claim_id": str(claim.id), "tenant_id": str(tenant.id), "fraud_flags": claim.fraud_flags},
    )
    return claim


# ============================================================
# REVIEW
# ============================================================

def _transition(db: Session, claim: PurchaseClaim, values: dict) -> bool:
    updated = (
        db.query(PurchaseClaim)
        .filter(PurchaseClaim.id == claim.id, PurchaseClaim.status == "pending")
        .update(values, synchronize_session=False)
    )
    db.refresh(claim)
    return updated == 1


def review_claim(
    db: Session,
    tenant: Tenant,
    claim_id,
    *,
    action: str,
    rejection_reason: str | None = None,
    reviewed_by_user_id: str | None = None,
    now: datetime | None = None,
) -> PurchaseClaim:
    """
    Approve or reject a pending claim.

    Only one reviewer can win: the status change is a guarded update on
    ``status = 'pending'`` and the loser gets AlreadyReviewedError. An
    overdue claim is marked expired (committed) and ExpiredError is raised.
    """
    if now is None:
        now = utcnow()
    if action not in REVIEW_ACTIONS:
        raise ValidationError('Action must be "approve" or "reject"', field="action")
    reason = (rejection_reason or "").strip()
    if action == "reject" and not reason:
        raise ValidationError("Rejection reason is required", field="rejection_reason")

    claim = get_claim(db, tenant.id, claim_id)
    if claim.status != "pending":
        raise AlreadyReviewedError(claim.status)

    if claim.expires_at <= now:
        if _transition(db, claim, {"status": "expired"}):
            db.commit()
            logger.info("claim expired on review", extra={"claim_id": str(claim.id)})
            raise ExpiredError("claim", str(claim.id))
        raise AlreadyReviewedError(claim.status)

    target = "approved" if action == "approve" else "rejected"
    values = {"status": target, "reviewed_by_user_id": reviewed_by_user_id, "reviewed_at": now}
    if target == "rejected":
        values["rejection_reason"] = reason
    if not _transition(db, claim, values):
        raise AlreadyReviewedError(claim.status)

    customer = db.query(Customer).filter(Customer.id == claim.customer_id).first()

    if target == "approved":
        _apply_approval(db, tenant, claim, customer, reviewed_by_user_id, now)
    else:
        enqueue_notification(
            db,
            tenant=tenant,
            customer=customer,
            kind="claim_rejected",
            message=f"Your purchase claim was not approved.\nReason: {reason}",
        )

    logger.info(
        "claim reviewed",
        extra={"claim_id": str(claim.id), "status": claim.status, "reviewed_by": reviewed_by_user_id},
    )
    return claim


def _apply_approval(db: Session, tenant: Tenant, claim: PurchaseClaim, customer: Customer, reviewed_by_user_id, now):
    points = points_for_amount(tenant.home_currency, claim.amount_minor)
    if not can_accrue_points(customer):
        points = 0

    purchase = Purchase(
        tenant_id=tenant.id,
        customer_id=customer.id,
        amount_minor=claim.amount_minor,
        currency=tenant.home_currency,
        points_awarded=points,
        source="claim",
        channel=claim.channel,
        description=claim.description or "Approved purchase claim",
        receipt_url=claim.receipt_url,
        claim_id=claim.id,
        logged_by_user_id=reviewed_by_user_id,
        purchase_date=claim.purchase_date,
        created_at=now,
    )
    db.add(purchase)
    db.flush()

    claim.purchase_id = purchase.id
    record_purchase_stats(customer, claim.amount_minor, now)

    entry = earn_points(
        db,
        tenant_id=tenant.id,
        customer_id=customer.id,
        points=points,
        description=f"Purchase claim approved ({claim.channel})",
        metadata={"purchaseId": str(purchase.id), "claimId": str(claim.id)},
        now=now,
    )
    db.flush()

    if entry is not None:
        message = (
            "Your purchase claim has been approved!\n"
            f"You earned {points} points.\n"
            f"New balance: {entry.balance_after} points"
        )
    else:
        message = "Your purchase claim has been approved."
    enqueue_notification(db, tenant=tenant, customer=customer, kind="claim_approved", message=message)
    return purchase


# ============================================================
# LIST / EXPIRE
# ============================================================

def expire_claims(db: Session, *, now: datetime | None = None, tenant_id=None) -> int:
    if now is None:
        now = utcnow()

    q = (
        db.query(PurchaseClaim)
        .filter(PurchaseClaim.status == "pending")
        .filter(PurchaseClaim.expires_at <= now)
    )
    if tenant_id is not None:
        q = q.filter(PurchaseClaim.tenant_id == tenant_id)

    count = q.update({"status": "expired"}, synchronize_session=False)
    db.flush()
    if count:
        logger.info("claims expired", extra={"count": count, "tenant_id": str(tenant_id) if tenant_id else None})
    return count


def list_claims(db: Session, tenant_id, *, status: str | None = None, offset: int = 0, limit: int = 20, now=None):
    expire_claims(db, now=now, tenant_id=tenant_id)
    db.expire_all()

    q = db.query(PurchaseClaim).filter(PurchaseClaim.tenant_id == tenant_id)
    if status and status != "all":
        q = q.filter(PurchaseClaim.status == status)

    total = q.count()
    items = q.order_by(PurchaseClaim.created_at.desc()).offset(offset).limit(limit).all()
    return items, total


def claim_history_counters(db: Session, customer_ids) -> dict:
    ids = list({cid for cid in customer_ids})
    if not ids:
        return {}

    rows = (
        db.query(
            PurchaseClaim.customer_id,
            func.count(PurchaseClaim.id),
            func.sum(case((PurchaseClaim.status == "rejected", 1), else_=0)),
        )
        .filter(PurchaseClaim.customer_id.in_(ids))
        .group_by(PurchaseClaim.customer_id)
        .all()
    )

    counters = {}
    for customer_id, total, rejected in rows:
        total = int(total or 0)
        rejected = int(rejected or 0)
        counters[customer_id] = {
            "totalClaims": total,
            "rejectedClaims": rejected,
            "rejectionRate": round(rejected / total * 100, 1) if total else 0.0,
        }
    return counters
