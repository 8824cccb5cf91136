import logging
from datetime import datetime

from sqlalchemy.orm import Session

from loyalty_ledger.db import utcnow
from loyalty_ledger.errors import InsufficientBalanceError, ValidationError
from loyalty_ledger.models.points_balance import PointsBalance
from loyalty_ledger.models.points_transaction import PointsTransaction


logger = logging.getLogger(__name__)

TRANSACTION_TYPES = ("earned", "redeemed", "expired", "adjusted")


# ============================================================
# BALANCE ROW (per-customer serialisation point)
# ============================================================

def lock_balance(db: Session, tenant_id, customer_id) -> PointsBalance:
    """
    Select the customer's balance row FOR UPDATE, creating it if missing.
    Every ledger append for a customer goes through this lock, which gives
    a total order over that customer's transactions.
    """
    balance = (
        db.query(PointsBalance)
        .filter(PointsBalance.tenant_id == tenant_id, PointsBalance.customer_id == customer_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if balance is None:
        balance = PointsBalance(
            tenant_id=tenant_id,
            customer_id=customer_id,
            current_balance=0,
            total_earned=0,
            total_redeemed=0,
            last_sequence=0,
        )
        db.add(balance)
        db.flush()
    return balance


def _check_sign(type_: str, points: int):
    if type_ not in TRANSACTION_TYPES:
        raise ValidationError(f"Unknown transaction type: {type_}", field="type")
    if points == 0:
        raise ValidationError("Points must not be zero", field="points")
    if type_ == "earned" and points < 0:
        raise ValidationError("Earned points must be positive", field="points")
    if type_ in ("redeemed", "expired") and points > 0:
        raise ValidationError(f"{type_.capitalize()} points must be negative", field="points")


# ============================================================
# RECORD TRANSACTION
# ============================================================

def record_transaction(
    db: Session,
    *,
    tenant_id,
    customer_id,
    type: str,
    points: int,
    description: str | None = None,
    metadata: dict | None = None,
    created_by_user_id: str | None = None,
    now: datetime | None = None,
) -> PointsTransaction:
    """
    Append one ledger entry and update the cached balance in the same unit
    of work. Debits that would take the balance below zero raise
    InsufficientBalanceError and leave nothing behind.

    The caller owns the surrounding DB transaction (commit/rollback).
    """
    points = int(points)
    _check_sign(type, points)
    if now is None:
        now = utcnow()

    balance = lock_balance(db, tenant_id, customer_id)

    new_balance = balance.current_balance + points
    if new_balance < 0:
        raise InsufficientBalanceError(balance.current_balance, -points)

    if points > 0:
        balance.total_earned = balance.total_earned + points
        balance.last_earned_at = now
    else:
        balance.total_redeemed = balance.total_redeemed - points
        balance.last_redeemed_at = now

    balance.current_balance = new_balance
    balance.last_sequence = balance.last_sequence + 1

    entry = PointsTransaction(
        tenant_id=tenant_id,
        customer_id=customer_id,
        sequence=balance.last_sequence,
        type=type,
        points=points,
        balance_after=new_balance,
        description=description,
        metadata_=metadata or {},
        created_by_user_id=created_by_user_id,
        created_at=now,
    )
    db.add(entry)
    db.flush()

    logger.debug(
        "ledger entry appended",
        extra={
            "customer_id": str(customer_id),
            "type": type,
            "points": points,
            "sequence": entry.sequence,
            "balance_after": new_balance,
        },
    )
    return entry


# ============================================================
# CONVENIENCE WRAPPERS
# ============================================================

def earn_points(db: Session, *, tenant_id, customer_id, points: int, description: str, metadata: dict | None = None, now=None):
    if points <= 0:
        return None
    return record_transaction(
        db,
        tenant_id=tenant_id,
        customer_id=customer_id,
        type="earned",
        points=points,
        description=description,
        metadata=metadata,
        now=now,
    )


def burn_points(db: Session, *, tenant_id, customer_id, points: int, description: str, metadata: dict | None = None, now=None):
    return record_transaction(
        db,
        tenant_id=tenant_id,
        customer_id=customer_id,
        type="redeemed",
        points=-abs(int(points)),
        description=description,
        metadata=metadata,
        now=now,
    )
