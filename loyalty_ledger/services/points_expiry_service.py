"""
Expiry of old points for tenants that enable it.

Debits consume the oldest credits first, so what is still alive from
credits made on or before the cutoff is

    max(0, credits up to cutoff - all debits so far)

Expiring that amount appends an ``expired`` entry, which the next run
counts as a debit; earlier ledger entries are never touched. Refunds and
other positive adjustments count as new credits from their own date.
"""
import logging
from datetime import datetime, timedelta

from sqlalchemy import and_, case, func
from sqlalchemy.orm import Session

from loyalty_ledger.config import settings
from loyalty_ledger.db import utcnow
from loyalty_ledger.models.customer import Customer
from loyalty_ledger.models.points_balance import PointsBalance
from loyalty_ledger.models.points_transaction import PointsTransaction
from loyalty_ledger.models.tenant import Tenant
from loyalty_ledger.services.loyalty_service import lock_balance, record_transaction
from loyalty_ledger.services.notification_service import enqueue_notification


logger = logging.getLogger(__name__)


def expiry_days_for(tenant: Tenant) -> int | None:
    raw = tenant.settings or {}
    if not raw.get("points_expiry_enabled", False):
        return None
    return int(raw.get("points_expiry_days", settings.default_points_expiry_days))


def expirable_points(db: Session, tenant_id, customer_id, *, cutoff: datetime) -> int:
    old_credits, debits = (
        db.query(
            func.coalesce(
                func.sum(
                    case(
                        (and_(PointsTransaction.points > 0, PointsTransaction.created_at <= cutoff), PointsTransaction.points),
                        else_=0,
                    )
                ),
                0,
            ),
            func.coalesce(
                func.sum(case((PointsTransaction.points < 0, -PointsTransaction.points), else_=0)),
                0,
            ),
        )
        .filter(PointsTransaction.tenant_id == tenant_id)
        .filter(PointsTransaction.customer_id == customer_id)
        .one()
    )
    return max(0, int(old_credits or 0) - int(debits or 0))


def expire_customer_points(
    db: Session,
    tenant: Tenant,
    customer: Customer,
    *,
    now: datetime | None = None,
    days: int | None = None,
) -> PointsTransaction | None:
    if now is None:
        now = utcnow()
    if days is None:
        days = expiry_days_for(tenant)
        if days is None:
            return None

    cutoff = now - timedelta(days=days)
    balance = lock_balance(db, tenant.id, customer.id)
    amount = min(expirable_points(db, tenant.id, customer.id, cutoff=cutoff), balance.current_balance)
    if amount <= 0:
        return None

    entry = record_transaction(
        db,
        tenant_id=tenant.id,
        customer_id=customer.id,
        type="expired",
        points=-amount,
        description=f"{amount} points expired",
        metadata={"cutoff": cutoff.isoformat(), "expiryDays": days},
        now=now,
    )

    if (tenant.settings or {}).get("notify_points_expiry", True) is not False:
        enqueue_notification(
            db,
            tenant=tenant,
            customer=customer,
            kind="points_expired",
            message=(
                f"{amount} points from {tenant.business_name} have expired.\n"
                f"New balance: {entry.balance_after} points\n"
                "Earn more points with your next purchase!"
            ),
        )

    logger.info(
        "points expired",
        extra={"customer_id": str(customer.id), "points": amount, "balance_after": entry.balance_after},
    )
    return entry


def expire_points(db: Session, *, now: datetime | None = None, tenant_id=None) -> int:
    """Expire old points for every enabled tenant. Returns the number of customers affected."""
    if now is None:
        now = utcnow()

    tenants_q = db.query(Tenant).filter(Tenant.deleted_at.is_(None))
    if tenant_id is not None:
        tenants_q = tenants_q.filter(Tenant.id == tenant_id)

    affected = 0
    for tenant in tenants_q.all():
        days = expiry_days_for(tenant)
        if days is None:
            continue

        cutoff = now - timedelta(days=days)
        funded = (
            db.query(PointsBalance.customer_id)
            .filter(PointsBalance.tenant_id == tenant.id, PointsBalance.current_balance > 0)
        )
        customer_ids = [
            row[0]
            for row in db.query(PointsTransaction.customer_id)
            .filter(PointsTransaction.tenant_id == tenant.id)
            .filter(PointsTransaction.points > 0, PointsTransaction.created_at <= cutoff)
            .filter(PointsTransaction.customer_id.in_(funded))
            .distinct()
            .all()
        ]
        if not customer_ids:
            continue

        for customer in db.query(Customer).filter(Customer.id.in_(customer_ids)).all():
            if expire_customer_points(db, tenant, customer, now=now, days=days) is not None:
                affected += 1

    db.flush()
    if affected:
        logger.info("points expiry sweep finished", extra={"customers": affected})
    return affected
