from datetime import datetime

from sqlalchemy.orm import Session

from loyalty_ledger.db import utcnow
from loyalty_ledger.errors import (
    NotFoundError,
    RedemptionLimitReachedError,
    RewardUnavailableError,
    ValidationError,
)
from loyalty_ledger.models.redemption import Redemption
from loyalty_ledger.models.reward import Reward
from loyalty_ledger.models.tenant import Tenant
from loyalty_ledger.services.earn_rate_service import minimum_reward_value_minor


EDITABLE_FIELDS = (
    "name",
    "description",
    "category",
    "points_required",
    "monetary_value_minor",
    "is_active",
    "stock_quantity",
    "max_redemptions_per_customer",
    "valid_from",
    "valid_until",
    "terms_and_conditions",
)

# redemptions that count against max_redemptions_per_customer
HOLDING_STATUSES = ("pending", "fulfilled")


# ============================================================
# VALIDATION
# ============================================================

def _validate(values: dict, currency: str):
    name = values.get("name")
    if not name or not str(name).strip():
        raise ValidationError("Reward name is required", field="name")

    points_required = values.get("points_required")
    if points_required is None or int(points_required) <= 0:
        raise ValidationError("Points required must be greater than zero", field="points_required")

    stock = values.get("stock_quantity")
    if stock is not None and int(stock) < 0:
        raise ValidationError("Stock quantity cannot be negative", field="stock_quantity")

    max_per_customer = values.get("max_redemptions_per_customer")
    if max_per_customer is not None and int(max_per_customer) < 0:
        raise ValidationError(
            "Max redemptions per customer cannot be negative", field="max_redemptions_per_customer"
        )

    valid_from, valid_until = values.get("valid_from"), values.get("valid_until")
    if valid_from and valid_until and valid_from > valid_until:
        raise ValidationError("valid_from must be on or before valid_until", field="valid_until")

    monetary = values.get("monetary_value_minor")
    if monetary is not None:
        minimum = minimum_reward_value_minor(currency)
        if int(monetary) < minimum:
            raise ValidationError(
                f"Reward value must be at least {minimum} minor units of {currency}",
                field="monetary_value_minor",
            )


# ============================================================
# CRUD
# ============================================================

def get_reward(db: Session, tenant_id, reward_id) -> Reward:
    reward = (
        db.query(Reward)
        .filter(Reward.id == reward_id, Reward.tenant_id == tenant_id, Reward.deleted_at.is_(None))
        .first()
    )
    if not reward:
        raise NotFoundError("Reward", reward_id)
    return reward


def list_rewards(db: Session, tenant_id, *, offset: int = 0, limit: int = 20, active_only: bool = False):
    q = db.query(Reward).filter(Reward.tenant_id == tenant_id, Reward.deleted_at.is_(None))
    if active_only:
        q = q.filter(Reward.is_active.is_(True))
    total = q.count()
    items = q.order_by(Reward.points_required.asc(), Reward.name.asc()).offset(offset).limit(limit).all()
    return items, total


def create_reward(db: Session, tenant: Tenant, values: dict) -> Reward:
    data = {k: values.get(k) for k in EDITABLE_FIELDS if k in values}
    _validate(data, tenant.home_currency)

    reward = Reward(tenant_id=tenant.id, total_redemptions=0, **data)
    reward.name = reward.name.strip()
    if reward.is_active is None:
        reward.is_active = True
    db.add(reward)
    db.flush()
    return reward


def update_reward(db: Session, tenant: Tenant, reward_id, changes: dict) -> Reward:
    reward = get_reward(db, tenant.id, reward_id)

    merged = {k: getattr(reward, k) for k in EDITABLE_FIELDS}
    for key, value in changes.items():
        if key not in EDITABLE_FIELDS:
            raise ValidationError(f"Unknown reward field: {key}", field=key)
        merged[key] = value
    _validate(merged, tenant.home_currency)

    for key in changes:
        setattr(reward, key, merged[key])
    db.flush()
    return reward


def delete_reward(db: Session, tenant_id, reward_id, *, now: datetime | None = None) -> Reward:
    reward = get_reward(db, tenant_id, reward_id)
    reward.deleted_at = now or utcnow()
    reward.is_active = False
    db.flush()
    return reward


# ============================================================
# ELIGIBILITY
# ============================================================

def count_holding_redemptions(db: Session, reward_id, customer_id) -> int:
    return (
        db.query(Redemption)
        .filter(
            Redemption.reward_id == reward_id,
            Redemption.customer_id == customer_id,
            Redemption.status.in_(HOLDING_STATUSES),
        )
        .count()
    )


def check_eligibility(db: Session, reward: Reward, customer_id, *, now: datetime | None = None):
    if now is None:
        now = utcnow()

    if reward.deleted_at is not None or not reward.is_active:
        raise RewardUnavailableError("reward is not active")
    if reward.valid_from and now < reward.valid_from:
        raise RewardUnavailableError("reward is not yet available")
    if reward.valid_until and now > reward.valid_until:
        raise RewardUnavailableError("reward has expired")
    if reward.stock_quantity is not None and reward.stock_quantity <= 0:
        raise RewardUnavailableError("out of stock")

    limit = reward.max_redemptions_per_customer
    if limit is not None and count_holding_redemptions(db, reward.id, customer_id) >= limit:
        raise RedemptionLimitReachedError(limit)


# ============================================================
# STOCK (only these two functions write stock/counters)
# ============================================================

def reserve_stock(db: Session, reward: Reward) -> bool:
    """
    Take one unit of stock and bump ``total_redemptions``.
    Returns True when a finite stock unit was taken.
    """
    if reward.stock_quantity is None:
        db.query(Reward).filter(Reward.id == reward.id).update(
            {Reward.total_redemptions: Reward.total_redemptions + 1},
            synchronize_session=False,
        )
        db.refresh(reward)
        return False

    updated = (
        db.query(Reward)
        .filter(Reward.id == reward.id, Reward.stock_quantity > 0)
        .update(
            {
                Reward.stock_quantity: Reward.stock_quantity - 1,
                Reward.total_redemptions: Reward.total_redemptions + 1,
            },
            synchronize_session=False,
        )
    )
    db.refresh(reward)
    if updated == 0:
        raise RewardUnavailableError("out of stock")
    return True


def restore_stock(db: Session, reward_id, *, stock_reserved: bool):
    if stock_reserved:
        db.query(Reward).filter(Reward.id == reward_id, Reward.stock_quantity.isnot(None)).update(
            {Reward.stock_quantity: Reward.stock_quantity + 1},
            synchronize_session=False,
        )
    db.query(Reward).filter(Reward.id == reward_id, Reward.total_redemptions > 0).update(
        {Reward.total_redemptions: Reward.total_redemptions - 1},
        synchronize_session=False,
    )
    reward = db.get(Reward, reward_id)
    if reward is not None:
        db.refresh(reward)
    return reward
