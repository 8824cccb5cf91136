import logging
from datetime import datetime

from sqlalchemy.orm import Session

from loyalty_ledger.db import utcnow
from loyalty_ledger.errors import ConflictError, NotFoundError, ValidationError
from loyalty_ledger.models.customer import Customer
from loyalty_ledger.models.tenant import Tenant
from loyalty_ledger.services.loyalty_service import lock_balance, record_transaction
from loyalty_ledger.services.notification_service import enqueue_notification
from loyalty_ledger.services.tenant_service import resolve_settings


logger = logging.getLogger(__name__)


def normalize_phone(value: str) -> str:
    digits = (value or "").strip().replace(" ", "").replace("-", "").lstrip("+")
    if not digits or not digits.isdigit():
        raise ValidationError("Invalid phone number format", field="phone_number")
    return f"+{digits}"


def phone_variants(value: str) -> list[str]:
    p = (value or "").strip()
    no_plus = p.lstrip("+")
    variants = [p, no_plus, f"+{no_plus}"]
    return list(dict.fromkeys(v for v in variants if v))


def get_customer(db: Session, tenant_id, customer_id) -> Customer:
    customer = (
        db.query(Customer)
        .filter(
            Customer.id == customer_id,
            Customer.tenant_id == tenant_id,
            Customer.deleted_at.is_(None),
        )
        .first()
    )
    if not customer:
        raise NotFoundError("Customer", customer_id)
    return customer


def find_customer_by_phone(db: Session, tenant_id, phone_number: str) -> Customer | None:
    return (
        db.query(Customer)
        .filter(
            Customer.tenant_id == tenant_id,
            Customer.phone_number.in_(phone_variants(phone_number)),
            Customer.deleted_at.is_(None),
        )
        .first()
    )


def list_customers(db: Session, tenant_id, *, offset: int, limit: int, status: str | None = None, search: str | None = None):
    q = db.query(Customer).filter(Customer.tenant_id == tenant_id, Customer.deleted_at.is_(None))
    if status:
        q = q.filter(Customer.loyalty_status == status)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(
            Customer.phone_number.ilike(like)
            | Customer.first_name.ilike(like)
            | Customer.last_name.ilike(like)
        )
    total = q.count()
    items = q.order_by(Customer.created_at.desc()).offset(offset).limit(limit).all()
    return items, total


# ============================================================
# STATUS GATE
# ============================================================

def can_accrue_points(customer: Customer) -> bool:
    return customer.loyalty_status != "blocked"


def set_blocked(db: Session, customer: Customer, *, blocked: bool, reason: str | None = None, now: datetime | None = None) -> Customer:
    """Block or unblock. Past ledger entries are never touched."""
    if now is None:
        now = utcnow()

    customer.loyalty_status = "blocked" if blocked else "active"
    action = "Blocked" if blocked else "Unblocked"
    note = f"[{now.isoformat()}] {action}: {reason or 'No reason provided'}"
    customer.notes = f"{customer.notes}\n{note}" if customer.notes else note
    db.flush()

    logger.info(
        "customer status changed",
        extra={"customer_id": str(customer.id), "loyalty_status": customer.loyalty_status},
    )
    return customer


# ============================================================
# CREATE
# ============================================================

def create_customer(
    db: Session,
    tenant: Tenant,
    *,
    phone_number: str,
    first_name: str | None = None,
    last_name: str | None = None,
    email: str | None = None,
    whatsapp_name: str | None = None,
    opted_in: bool = False,
    created_by_user_id: str | None = None,
    now: datetime | None = None,
) -> Customer:
    if now is None:
        now = utcnow()

    phone = normalize_phone(phone_number)
    if find_customer_by_phone(db, tenant.id, phone):
        raise ConflictError("A customer with this phone number already exists")
    if email:
        existing_email = (
            db.query(Customer.id)
            .filter(Customer.tenant_id == tenant.id, Customer.email == email, Customer.deleted_at.is_(None))
            .first()
        )
        if existing_email:
            raise ConflictError("A customer with this email already exists")

    customer = Customer(
        tenant_id=tenant.id,
        phone_number=phone,
        first_name=first_name,
        last_name=last_name,
        email=email,
        whatsapp_name=whatsapp_name or first_name,
        opted_in=bool(opted_in),
        opted_in_at=now if opted_in else None,
        loyalty_status="active",
        conversation_state={"activeVendor": True},
        created_at=now,
    )
    db.add(customer)
    db.flush()

    # The customer is now the active vendor for this phone number.
    others = (
        db.query(Customer)
        .filter(
            Customer.phone_number.in_(phone_variants(phone)),
            Customer.id != customer.id,
            Customer.deleted_at.is_(None),
        )
        .all()
    )
    for other in others:
        other.conversation_state = {**(other.conversation_state or {}), "activeVendor": False}

    lock_balance(db, tenant.id, customer.id)

    tenant_settings = resolve_settings(tenant)
    bonus = tenant_settings["welcomeBonusPoints"]
    if tenant_settings["welcomeBonusEnabled"] and bonus > 0:
        record_transaction(
            db,
            tenant_id=tenant.id,
            customer_id=customer.id,
            type="earned",
            points=bonus,
            description="Welcome bonus",
            metadata={"welcomeBonus": True, "awardedBy": created_by_user_id},
            created_by_user_id=created_by_user_id,
            now=now,
        )
        enqueue_notification(
            db,
            tenant=tenant,
            customer=customer,
            kind="welcome",
            message=f"Welcome to {tenant.business_name}! You have received {bonus} bonus points.",
        )
    else:
        enqueue_notification(
            db,
            tenant=tenant,
            customer=customer,
            kind="welcome",
            message=f"Welcome to {tenant.business_name}'s loyalty program!",
        )

    logger.info("customer created", extra={"customer_id": str(customer.id), "tenant_id": str(tenant.id)})
    return customer


def soft_delete_customer(db: Session, customer: Customer, *, now: datetime | None = None) -> Customer:
    customer.deleted_at = now or utcnow()
    db.flush()
    return customer


# ============================================================
# MANUAL ADJUSTMENT
# ============================================================

def adjust_points(
    db: Session,
    tenant: Tenant,
    customer: Customer,
    *,
    points: int,
    adjustment_type: str,
    description: str | None = None,
    adjusted_by_user_id: str | None = None,
    now: datetime | None = None,
):
    if not points or int(points) == 0:
        raise ValidationError("Points value is required and must not be zero", field="points")
    if adjustment_type not in ("add", "subtract"):
        raise ValidationError('adjustmentType must be either "add" or "subtract"', field="adjustment_type")

    value = abs(int(points))
    signed = value if adjustment_type == "add" else -value
    entry = record_transaction(
        db,
        tenant_id=tenant.id,
        customer_id=customer.id,
        type="adjusted",
        points=signed,
        description=description or f"Manual {'addition' if signed > 0 else 'deduction'} by admin",
        metadata={"adjustmentType": adjustment_type, "adjustedBy": adjusted_by_user_id},
        created_by_user_id=adjusted_by_user_id,
        now=now,
    )

    sign = "+" if signed > 0 else "-"
    enqueue_notification(
        db,
        tenant=tenant,
        customer=customer,
        kind="points_adjusted",
        message=(
            f"Points update: {sign}{value} points\n"
            f"Reason: {entry.description}\n"
            f"New balance: {entry.balance_after} points"
        ),
    )
    return entry


def record_purchase_stats(customer: Customer, amount_minor: int, now: datetime):
    customer.total_purchases = (customer.total_purchases or 0) + 1
    customer.total_spent_minor = (customer.total_spent_minor or 0) + int(amount_minor)
    customer.last_purchase_at = now
