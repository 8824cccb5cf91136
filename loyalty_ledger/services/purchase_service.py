import logging
from datetime import datetime

from sqlalchemy.orm import Session

from loyalty_ledger.db import utcnow
from loyalty_ledger.errors import ValidationError
from loyalty_ledger.models.customer import Customer
from loyalty_ledger.models.purchase import Purchase
from loyalty_ledger.models.tenant import Tenant
from loyalty_ledger.services.contact_service import can_accrue_points, record_purchase_stats
from loyalty_ledger.services.earn_rate_service import points_for_amount
from loyalty_ledger.services.loyalty_service import earn_points
from loyalty_ledger.services.notification_service import enqueue_notification


logger = logging.getLogger(__name__)


def log_purchase(
    db: Session,
    tenant: Tenant,
    customer: Customer,
    *,
    amount_minor: int,
    description: str | None = None,
    channel: str | None = None,
    receipt_url: str | None = None,
    purchase_date: datetime | None = None,
    logged_by_user_id: str | None = None,
    now: datetime | None = None,
) -> Purchase:
    """
    Record a vendor-confirmed sale and award points for it.

    Points are always derived from ``amount_minor`` with the tenant's home
    currency. A blocked customer still gets the Purchase row, with zero
    points and no ledger entry.
    """
    if now is None:
        now = utcnow()
    if amount_minor is None or int(amount_minor) <= 0:
        raise ValidationError("Amount must be greater than zero", field="amount")
    amount_minor = int(amount_minor)

    if purchase_date is None:
        purchase_date = now
    if purchase_date > now:
        raise ValidationError("Purchase date cannot be in the future", field="purchase_date")

    blocked = not can_accrue_points(customer)
    points = 0 if blocked else points_for_amount(tenant.home_currency, amount_minor)

    purchase = Purchase(
        tenant_id=tenant.id,
        customer_id=customer.id,
        amount_minor=amount_minor,
        currency=tenant.home_currency,
        points_awarded=points,
        source="vendor",
        channel=channel,
        description=description,
        receipt_url=receipt_url,
        logged_by_user_id=logged_by_user_id,
        purchase_date=purchase_date,
        created_at=now,
    )
    db.add(purchase)
    db.flush()

    record_purchase_stats(customer, amount_minor, now)

    entry = earn_points(
        db,
        tenant_id=tenant.id,
        customer_id=customer.id,
        points=points,
        description=description or "Purchase",
        metadata={"purchaseId": str(purchase.id)},
        now=now,
    )
    db.flush()

    if blocked:
        logger.info(
            "purchase recorded for blocked customer; no points awarded",
            extra={"purchase_id": str(purchase.id), "customer_id": str(customer.id)},
        )
    elif entry is not None:
        enqueue_notification(
            db,
            tenant=tenant,
            customer=customer,
            kind="purchase_logged",
            message=(
                "Thanks for your purchase!\n"
                f"You earned {points} points.\n"
                f"New balance: {entry.balance_after} points"
            ),
            respect_notify_purchase=True,
        )

    return purchase


def list_purchases(
    db: Session,
    tenant_id,
    *,
    offset: int = 0,
    limit: int = 20,
    customer_id=None,
    source: str | None = None,
):
    q = db.query(Purchase).filter(Purchase.tenant_id == tenant_id)
    if customer_id:
        q = q.filter(Purchase.customer_id == customer_id)
    if source:
        q = q.filter(Purchase.source == source)

    total = q.count()
    items = q.order_by(Purchase.purchase_date.desc(), Purchase.created_at.desc()).offset(offset).limit(limit).all()
    return items, total
