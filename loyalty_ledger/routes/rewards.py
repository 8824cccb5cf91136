from uuid import UUID

from fastapi import APIRouter, Depends, Header
from sqlalchemy.orm import Session

from loyalty_ledger.db import get_db
from loyalty_ledger.deps.tenant import TenantContext, get_tenant_context
from loyalty_ledger.pagination import build_pagination, normalize_page
from loyalty_ledger.schemas.common import Page
from loyalty_ledger.schemas.redemption import RedemptionOut
from loyalty_ledger.schemas.reward import (
    RedeemRequest,
    RewardCreate,
    RewardOut,
    RewardUpdate,
    to_reward_values,
)
from loyalty_ledger.services.contact_service import get_customer
from loyalty_ledger.services.earn_rate_service import minimum_reward_value_minor, suggested_points
from loyalty_ledger.services.redemption_service import redeem
from loyalty_ledger.services.reward_service import (
    create_reward,
    delete_reward,
    get_reward,
    list_rewards,
    update_reward,
)
from loyalty_ledger.services.tenant_service import resolve_settings


router = APIRouter(prefix="/rewards", tags=["rewards"])


@router.get("", response_model=Page[RewardOut])
def list_rewards_route(
    page: int = 1,
    limit: int = 20,
    active: bool = False,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    page, limit, offset = normalize_page(page, limit)
    items, total = list_rewards(db, ctx.tenant_id, offset=offset, limit=limit, active_only=active)
    return {"data": items, "pagination": build_pagination(total, page, limit)}


@router.get("/suggested-points")
def suggest_reward_points(
    targetValue: float,
    ctx: TenantContext = Depends(get_tenant_context),
):
    currency = ctx.tenant.home_currency
    burn_rate = resolve_settings(ctx.tenant)["burnRate"]
    return {
        "currency": currency,
        "targetValue": targetValue,
        "suggestedPoints": suggested_points(targetValue, currency, burn_rate),
        "minimumValueMinor": minimum_reward_value_minor(currency),
    }


@router.post("", response_model=RewardOut, status_code=201)
def create_reward_route(
    payload: RewardCreate,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    reward = create_reward(db, ctx.tenant, to_reward_values(payload.model_dump()))
    db.commit()
    db.refresh(reward)
    return reward


@router.get("/{reward_id}", response_model=RewardOut)
def get_reward_route(
    reward_id: UUID,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    return get_reward(db, ctx.tenant_id, reward_id)


@router.put("/{reward_id}", response_model=RewardOut)
def update_reward_route(
    reward_id: UUID,
    payload: RewardUpdate,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    changes = to_reward_values(payload.model_dump(exclude_unset=True))
    reward = update_reward(db, ctx.tenant, reward_id, changes)
    db.commit()
    db.refresh(reward)
    return reward


@router.delete("/{reward_id}")
def delete_reward_route(
    reward_id: UUID,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    delete_reward(db, ctx.tenant_id, reward_id)
    db.commit()
    return {"message": "Reward deleted successfully"}


@router.post("/{reward_id}/redeem", response_model=RedemptionOut, status_code=201)
def redeem_reward(
    reward_id: UUID,
    payload: RedeemRequest,
    x_idempotency_key: str | None = Header(default=None, alias="X-Idempotency-Key"),
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    customer = get_customer(db, ctx.tenant_id, payload.customerId)
    redemption = redeem(db, ctx.tenant, customer, reward_id, idempotency_key=x_idempotency_key)
    db.commit()
    db.refresh(redemption)
    return redemption
