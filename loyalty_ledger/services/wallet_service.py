from dataclasses import dataclass

from sqlalchemy import func
from sqlalchemy.orm import Session

from loyalty_ledger.models.points_balance import PointsBalance
from loyalty_ledger.models.points_transaction import PointsTransaction


@dataclass
class BalanceSnapshot:
    current: int
    total_earned: int
    total_redeemed: int


def get_balance(db: Session, tenant_id, customer_id) -> BalanceSnapshot:
    balance = (
        db.query(PointsBalance)
        .filter(PointsBalance.tenant_id == tenant_id, PointsBalance.customer_id == customer_id)
        .first()
    )
    if balance is None:
        return BalanceSnapshot(current=0, total_earned=0, total_redeemed=0)
    return BalanceSnapshot(
        current=int(balance.current_balance),
        total_earned=int(balance.total_earned),
        total_redeemed=int(balance.total_redeemed),
    )


def get_points_balance(db: Session, tenant_id, customer_id) -> int:
    return get_balance(db, tenant_id, customer_id).current


def list_transactions(
    db: Session,
    tenant_id,
    customer_id,
    *,
    offset: int = 0,
    limit: int = 20,
    type: str | None = None,
):
    q = (
        db.query(PointsTransaction)
        .filter(PointsTransaction.tenant_id == tenant_id)
        .filter(PointsTransaction.customer_id == customer_id)
    )
    if type:
        q = q.filter(PointsTransaction.type == type)

    total = q.count()
    items = (
        q.order_by(PointsTransaction.sequence.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return items, total


def iter_transactions(db: Session, customer_id, *, page_size: int = 100, after_sequence: int = 0):
    """
    Yield a customer's ledger in insertion order, one page at a time.
    Restart from any point by passing the last seen ``sequence`` as
    ``after_sequence``.
    """
    cursor = after_sequence
    while True:
        page = (
            db.query(PointsTransaction)
            .filter(PointsTransaction.customer_id == customer_id)
            .filter(PointsTransaction.sequence > cursor)
            .order_by(PointsTransaction.sequence.asc())
            .limit(page_size)
            .all()
        )
        if not page:
            return
        for entry in page:
            yield entry
        cursor = page[-1].sequence
        if len(page) < page_size:
            return


def audit_balance(db: Session, tenant_id, customer_id) -> dict:
    snapshot = get_balance(db, tenant_id, customer_id)
    ledger_sum = (
        db.query(func.coalesce(func.sum(PointsTransaction.points), 0))
        .filter(PointsTransaction.tenant_id == tenant_id)
        .filter(PointsTransaction.customer_id == customer_id)
        .scalar()
    )
    ledger_sum = int(ledger_sum or 0)
    return {
        "currentBalance": snapshot.current,
        "totalEarned": snapshot.total_earned,
        "totalRedeemed": snapshot.total_redeemed,
        "ledgerSum": ledger_sum,
        "consistent": (
            snapshot.current == ledger_sum
            and snapshot.current == snapshot.total_earned - snapshot.total_redeemed
            and snapshot.current >= 0
        ),
    }
