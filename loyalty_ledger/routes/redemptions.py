from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from loyalty_ledger.db import get_db
from loyalty_ledger.deps.tenant import TenantContext, get_tenant_context
from loyalty_ledger.models.customer import Customer
from loyalty_ledger.models.reward import Reward
from loyalty_ledger.pagination import build_pagination, normalize_page
from loyalty_ledger.schemas.common import Page
from loyalty_ledger.schemas.redemption import (
    CancelRequest,
    FulfillRequest,
    RedemptionDetailOut,
    RedemptionOut,
    VerifyRequest,
)
from loyalty_ledger.services.redemption_service import (
    cancel,
    fulfill,
    list_redemptions,
    redemption_stats,
    verify,
)


router = APIRouter(prefix="/redemptions", tags=["redemptions"])


def _detail(db: Session, redemption) -> RedemptionDetailOut:
    reward = db.query(Reward).filter(Reward.id == redemption.reward_id).first()
    customer = db.query(Customer).filter(Customer.id == redemption.customer_id).first()
    return RedemptionDetailOut(
        **RedemptionOut.model_validate(redemption).model_dump(),
        reward_name=reward.name if reward else None,
        customer_name=customer.display_name if customer else None,
        customer_phone=customer.phone_number if customer else None,
    )


@router.get("", response_model=Page[RedemptionOut])
def list_redemptions_route(
    status: str | None = None,
    customerId: UUID | None = None,
    page: int = 1,
    limit: int = 20,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    page, limit, offset = normalize_page(page, limit)
    items, total = list_redemptions(
        db, ctx.tenant_id, status=status, customer_id=customerId, offset=offset, limit=limit
    )
    db.commit()
    return {"data": items, "pagination": build_pagination(total, page, limit)}


@router.get("/stats")
def redemption_stats_route(
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    stats = redemption_stats(db, ctx.tenant_id)
    db.commit()
    return stats


@router.post("/verify", response_model=RedemptionDetailOut)
def verify_redemption(
    payload: VerifyRequest,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    redemption = verify(db, ctx.tenant, payload.redemptionCode, verified_by_user_id=ctx.user_id)
    db.commit()
    db.refresh(redemption)
    return _detail(db, redemption)


@router.post("/{redemption_id}/fulfill", response_model=RedemptionDetailOut)
def fulfill_redemption(
    redemption_id: UUID,
    payload: FulfillRequest | None = None,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    redemption = fulfill(
        db,
        ctx.tenant,
        redemption_id,
        notes=payload.notes if payload else None,
        fulfilled_by_user_id=ctx.user_id,
    )
    db.commit()
    db.refresh(redemption)
    return _detail(db, redemption)


@router.post("/{redemption_id}/cancel", response_model=RedemptionDetailOut)
def cancel_redemption(
    redemption_id: UUID,
    payload: CancelRequest | None = None,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    redemption = cancel(
        db,
        ctx.tenant,
        redemption_id,
        reason=payload.reason if payload else None,
        cancelled_by_user_id=ctx.user_id,
    )
    db.commit()
    db.refresh(redemption)
    return _detail(db, redemption)
