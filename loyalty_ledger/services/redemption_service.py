"""
Redemption lifecycle.

Points are debited when the redemption is created (a reservation), so the
balance check and the stock decrement are committed together with the
``redeemed`` ledger entry. From ``pending`` a redemption goes to exactly
one of ``fulfilled`` (final, no ledger effect), ``cancelled`` or
``expired`` (both refund the debit and give the stock unit back).

State changes are guarded updates on ``status = 'pending'``; whoever loses
the race sees the row's current status and gets the matching error.
"""
import logging
import secrets
import string
import uuid
from datetime import datetime, timedelta

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from loyalty_ledger.config import settings
from loyalty_ledger.db import utcnow
from loyalty_ledger.errors import (
    AlreadyFulfilledError,
    ConflictError,
    ExpiredError,
    InsufficientPointsError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)
from loyalty_ledger.models.customer import Customer
from loyalty_ledger.models.redemption import Redemption
from loyalty_ledger.models.reward import Reward
from loyalty_ledger.models.tenant import Tenant
from loyalty_ledger.services.loyalty_service import burn_points, lock_balance, record_transaction
from loyalty_ledger.services.notification_service import enqueue_notification
from loyalty_ledger.services.reward_service import check_eligibility, get_reward, reserve_stock, restore_stock


logger = logging.getLogger(__name__)

CODE_PREFIX = "R"
CODE_LENGTH = 10
CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_ATTEMPTS = 5

STATUSES = ("pending", "fulfilled", "cancelled", "expired")


def generate_redemption_code() -> str:
    return CODE_PREFIX + "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def normalize_code(code: str | None) -> str:
    value = (code or "").strip().upper()
    if not value:
        raise ValidationError("Redemption code is required", field="redemption_code")
    return value


def get_redemption(db: Session, tenant_id, redemption_id) -> Redemption:
    redemption = (
        db.query(Redemption)
        .filter(Redemption.id == redemption_id, Redemption.tenant_id == tenant_id)
        .first()
    )
    if not redemption:
        raise NotFoundError("Redemption", redemption_id)
    return redemption


def _customer(db: Session, customer_id) -> Customer:
    return db.query(Customer).filter(Customer.id == customer_id).first()


def _transition(db: Session, redemption: Redemption, values: dict) -> bool:
    updated = (
        db.query(Redemption)
        .filter(Redemption.id == redemption.id, Redemption.status == "pending")
        .update(values, synchronize_session=False)
    )
    db.refresh(redemption)
    return updated == 1


def _refund(db: Session, redemption: Redemption, *, reason: str, now: datetime):
    return record_transaction(
        db,
        tenant_id=redemption.tenant_id,
        customer_id=redemption.customer_id,
        type="adjusted",
        points=redemption.points_used,
        description=f"Refund for {reason} redemption {redemption.redemption_code}",
        metadata={"redemptionId": str(redemption.id), "refund": reason},
        now=now,
    )


# ============================================================
# REDEEM
# ============================================================

def redeem(
    db: Session,
    tenant: Tenant,
    customer: Customer,
    reward_id,
    *,
    idempotency_key: str | None = None,
    now: datetime | None = None,
) -> Redemption:
    if now is None:
        now = utcnow()

    key = (idempotency_key or "").strip() or None
    if key:
        existing = (
            db.query(Redemption)
            .filter(Redemption.tenant_id == tenant.id, Redemption.idempotency_key == key)
            .first()
        )
        if existing:
            if existing.customer_id != customer.id or str(existing.reward_id) != str(reward_id):
                raise ConflictError("Idempotency key was already used for a different redemption")
            return existing

    # overdue holds on this reward give back their stock and limit slot first
    reward = get_reward(db, tenant.id, reward_id)
    released = expire_redemptions(db, now=now, tenant_id=tenant.id, reward_id=reward.id)
    if released:
        db.refresh(reward)

    # the per-customer limit is counted under the balance lock
    balance = lock_balance(db, tenant.id, customer.id)
    check_eligibility(db, reward, customer.id, now=now)
    if balance.current_balance < reward.points_required:
        raise InsufficientPointsError(balance.current_balance, reward.points_required)

    stock_reserved = reserve_stock(db, reward)

    redemption = None
    for _ in range(CODE_ATTEMPTS):
        candidate = Redemption(
            id=uuid.uuid4(),
            tenant_id=tenant.id,
            reward_id=reward.id,
            customer_id=customer.id,
            redemption_code=generate_redemption_code(),
            points_used=reward.points_required,
            stock_reserved=stock_reserved,
            status="pending",
            idempotency_key=key,
            expires_at=now + timedelta(hours=settings.redemption_expiry_hours),
            created_at=now,
        )
        try:
            with db.begin_nested():
                db.add(candidate)
                db.flush()
        except IntegrityError:
            if key and db.query(Redemption.id).filter(
                Redemption.tenant_id == tenant.id, Redemption.idempotency_key == key
            ).first():
                raise ConflictError("A redemption with this idempotency key is already being processed")
            logger.warning("redemption code collision; retrying", extra={"reward_id": str(reward.id)})
            continue
        redemption = candidate
        break

    if redemption is None:
        raise ConflictError("Could not allocate a unique redemption code")

    entry = burn_points(
        db,
        tenant_id=tenant.id,
        customer_id=customer.id,
        points=reward.points_required,
        description=f"Redeemed: {reward.name}",
        metadata={
            "redemptionId": str(redemption.id),
            "rewardId": str(reward.id),
            "redemptionCode": redemption.redemption_code,
        },
        now=now,
    )

    enqueue_notification(
        db,
        tenant=tenant,
        customer=customer,
        kind="redemption_created",
        message=(
            f"You redeemed {reward.name} for {reward.points_required} points.\n"
            f"Your code: {redemption.redemption_code}\n"
            f"Show this code to the vendor within {settings.redemption_expiry_hours} hours.\n"
            f"Remaining balance: {entry.balance_after} points"
        ),
    )

    logger.info(
        "redemption created",
        extra={
            "redemption_id": str(redemption.id),
            "reward_id": str(reward.id),
            "customer_id": str(customer.id),
            "points_used": redemption.points_used,
        },
    )
    return redemption


# ============================================================
# EXPIRY
# ============================================================

def _expire_one(db: Session, redemption: Redemption, now: datetime) -> bool:
    if not _transition(db, redemption, {"status": "expired"}):
        return False

    _refund(db, redemption, reason="expired", now=now)
    restore_stock(db, redemption.reward_id, stock_reserved=redemption.stock_reserved)

    tenant = db.query(Tenant).filter(Tenant.id == redemption.tenant_id).first()
    customer = _customer(db, redemption.customer_id)
    enqueue_notification(
        db,
        tenant=tenant,
        customer=customer,
        kind="redemption_expired",
        message=(
            f"Your redemption code {redemption.redemption_code} has expired.\n"
            f"{redemption.points_used} points have been returned to your balance."
        ),
    )
    logger.info("redemption expired", extra={"redemption_id": str(redemption.id)})
    return True


def _raise_if_overdue(db: Session, redemption: Redemption, now: datetime):
    """Expire an overdue pending redemption, commit the refund, then raise."""
    if redemption.status == "pending" and redemption.expires_at <= now:
        if _expire_one(db, redemption, now):
            db.commit()
        raise ExpiredError("redemption", redemption.redemption_code)


def expire_redemptions(db: Session, *, now: datetime | None = None, tenant_id=None, reward_id=None) -> int:
    if now is None:
        now = utcnow()

    q = (
        db.query(Redemption)
        .filter(Redemption.status == "pending")
        .filter(Redemption.expires_at <= now)
    )
    if tenant_id is not None:
        q = q.filter(Redemption.tenant_id == tenant_id)
    if reward_id is not None:
        q = q.filter(Redemption.reward_id == reward_id)

    overdue = q.order_by(Redemption.expires_at.asc()).with_for_update(skip_locked=True).all()

    count = 0
    for redemption in overdue:
        if _expire_one(db, redemption, now):
            count += 1
    db.flush()

    if count:
        logger.info("redemptions expired", extra={"count": count})
    return count


# ============================================================
# VERIFY / FULFIL / CANCEL
# ============================================================

def verify(
    db: Session,
    tenant: Tenant,
    redemption_code: str,
    *,
    verified_by_user_id: str | None = None,
    now: datetime | None = None,
) -> Redemption:
    if now is None:
        now = utcnow()
    code = normalize_code(redemption_code)

    redemption = (
        db.query(Redemption)
        .filter(Redemption.tenant_id == tenant.id, Redemption.redemption_code == code)
        .first()
    )
    if not redemption:
        raise NotFoundError("Redemption", code)

    if redemption.status == "fulfilled":
        raise AlreadyFulfilledError(code)
    if redemption.status == "expired":
        raise ExpiredError("redemption", code)
    if redemption.status != "pending":
        raise InvalidStateTransitionError("redemption", redemption.status, "verified")
    _raise_if_overdue(db, redemption, now)

    if redemption.verified_at is None:
        redemption.verified_at = now
        redemption.verified_by_user_id = verified_by_user_id
        db.flush()
    return redemption


def fulfill(
    db: Session,
    tenant: Tenant,
    redemption_id,
    *,
    notes: str | None = None,
    fulfilled_by_user_id: str | None = None,
    now: datetime | None = None,
) -> Redemption:
    if now is None:
        now = utcnow()

    redemption = get_redemption(db, tenant.id, redemption_id)
    if redemption.status == "fulfilled":
        raise AlreadyFulfilledError(redemption.redemption_code)
    _raise_if_overdue(db, redemption, now)

    values = {
        "status": "fulfilled",
        "fulfilled_at": now,
        "fulfilment_notes": notes,
        "verified_by_user_id": redemption.verified_by_user_id or fulfilled_by_user_id,
    }
    if not _transition(db, redemption, values):
        if redemption.status == "fulfilled":
            raise AlreadyFulfilledError(redemption.redemption_code)
        raise InvalidStateTransitionError("redemption", redemption.status, "fulfilled")

    reward = db.query(Reward).filter(Reward.id == redemption.reward_id).first()
    enqueue_notification(
        db,
        tenant=tenant,
        customer=_customer(db, redemption.customer_id),
        kind="redemption_fulfilled",
        message=f"Enjoy your {reward.name if reward else 'reward'}! Thank you for being a loyal customer.",
    )

    logger.info("redemption fulfilled", extra={"redemption_id": str(redemption.id)})
    return redemption


def cancel(
    db: Session,
    tenant: Tenant,
    redemption_id,
    *,
    reason: str | None = None,
    cancelled_by_user_id: str | None = None,
    now: datetime | None = None,
) -> Redemption:
    if now is None:
        now = utcnow()

    redemption = get_redemption(db, tenant.id, redemption_id)
    _raise_if_overdue(db, redemption, now)

    values = {
        "status": "cancelled",
        "cancelled_at": now,
        "cancellation_reason": (reason or "").strip() or "Cancelled by vendor",
    }
    if not _transition(db, redemption, values):
        raise InvalidStateTransitionError("redemption", redemption.status, "cancelled")

    entry = _refund(db, redemption, reason="cancelled", now=now)
    restore_stock(db, redemption.reward_id, stock_reserved=redemption.stock_reserved)

    enqueue_notification(
        db,
        tenant=tenant,
        customer=_customer(db, redemption.customer_id),
        kind="redemption_cancelled",
        message=(
            f"Your redemption {redemption.redemption_code} was cancelled.\n"
            f"Reason: {redemption.cancellation_reason}\n"
            f"{redemption.points_used} points have been refunded. New balance: {entry.balance_after} points"
        ),
    )

    logger.info(
        "redemption cancelled",
        extra={"redemption_id": str(redemption.id), "cancelled_by": cancelled_by_user_id},
    )
    return redemption


# ============================================================
# LISTING
# ============================================================

def list_redemptions(
    db: Session,
    tenant_id,
    *,
    status: str | None = None,
    customer_id=None,
    offset: int = 0,
    limit: int = 20,
    now: datetime | None = None,
):
    expire_redemptions(db, now=now, tenant_id=tenant_id)

    q = db.query(Redemption).filter(Redemption.tenant_id == tenant_id)
    if status and status != "all":
        if status not in STATUSES:
            raise ValidationError(f"Unknown redemption status: {status}", field="status")
        q = q.filter(Redemption.status == status)
    if customer_id:
        q = q.filter(Redemption.customer_id == customer_id)

    total = q.count()
    items = q.order_by(Redemption.created_at.desc()).offset(offset).limit(limit).all()
    return items, total


def redemption_stats(db: Session, tenant_id, *, now: datetime | None = None) -> dict:
    expire_redemptions(db, now=now, tenant_id=tenant_id)

    rows = (
        db.query(Redemption.status, func.count(Redemption.id), func.coalesce(func.sum(Redemption.points_used), 0))
        .filter(Redemption.tenant_id == tenant_id)
        .group_by(Redemption.status)
        .all()
    )
    counts = {status: 0 for status in STATUSES}
    points = {status: 0 for status in STATUSES}
    for status, count, used in rows:
        counts[status] = int(count)
        points[status] = int(used or 0)

    total = sum(counts.values())
    return {
        "total": total,
        **counts,
        "completionRate": round(counts["fulfilled"] / total * 100, 1) if total else 0.0,
        "pointsRedeemed": points["fulfilled"] + points["pending"],
    }
