from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from loyalty_ledger.db import get_db
from loyalty_ledger.deps.tenant import TenantContext, get_tenant_context
from loyalty_ledger.models.customer import Customer
from loyalty_ledger.pagination import build_pagination, normalize_page
from loyalty_ledger.schemas.claim import ClaimListItem, ClaimOut, ClaimReview, ClaimSubmit
from loyalty_ledger.schemas.common import Page
from loyalty_ledger.services.claim_service import (
    claim_history_counters,
    list_claims,
    review_claim,
    submit_claim,
)


router = APIRouter(prefix="/claims", tags=["claims"])


# Public: customers submit without a tenant session; the vendor code scopes it.
@router.post("/submit", response_model=ClaimOut, status_code=201)
def submit_claim_route(payload: ClaimSubmit, db: Session = Depends(get_db)):
    claim = submit_claim(
        db,
        vendor_code=payload.vendorCode,
        phone_number=payload.phoneNumber,
        amount_minor=payload.amount,
        purchase_date=payload.purchaseDate,
        channel=payload.channel,
        receipt_url=payload.receiptUrl,
        description=payload.description,
    )
    db.commit()
    db.refresh(claim)
    return claim


@router.get("", response_model=Page[ClaimListItem])
def list_claims_route(
    status: str | None = "pending",
    page: int = 1,
    limit: int = 20,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    page, limit, offset = normalize_page(page, limit)
    items, total = list_claims(db, ctx.tenant_id, status=status, offset=offset, limit=limit)
    db.commit()

    customer_ids = {c.customer_id for c in items}
    counters = claim_history_counters(db, customer_ids)
    names = {}
    if customer_ids:
        names = {
            c.id: c.display_name
            for c in db.query(Customer).filter(Customer.id.in_(list(customer_ids))).all()
        }

    data = []
    for claim in items:
        history = counters.get(claim.customer_id, {})
        data.append(
            ClaimListItem(
                **ClaimOut.model_validate(claim).model_dump(),
                customer_name=names.get(claim.customer_id),
                total_claims=history.get("totalClaims", 0),
                rejected_claims=history.get("rejectedClaims", 0),
                rejection_rate=history.get("rejectionRate", 0.0),
            )
        )
    return {"data": data, "pagination": build_pagination(total, page, limit)}


@router.post("/{claim_id}/review", response_model=ClaimOut)
def review_claim_route(
    claim_id: UUID,
    payload: ClaimReview,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    claim = review_claim(
        db,
        ctx.tenant,
        claim_id,
        action=payload.action,
        rejection_reason=payload.rejectionReason,
        reviewed_by_user_id=ctx.user_id,
    )
    db.commit()
    db.refresh(claim)
    return claim
