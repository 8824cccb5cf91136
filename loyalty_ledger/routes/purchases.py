from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from loyalty_ledger.db import get_db
from loyalty_ledger.deps.tenant import TenantContext, get_tenant_context
from loyalty_ledger.pagination import build_pagination, normalize_page
from loyalty_ledger.schemas.common import Page
from loyalty_ledger.schemas.purchase import PurchaseCreate, PurchaseOut
from loyalty_ledger.services.contact_service import get_customer
from loyalty_ledger.services.purchase_service import list_purchases, log_purchase


router = APIRouter(prefix="/purchases", tags=["purchases"])


@router.post("", response_model=PurchaseOut, status_code=201)
def create_purchase(
    payload: PurchaseCreate,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    customer = get_customer(db, ctx.tenant_id, payload.customerId)
    purchase = log_purchase(
        db,
        ctx.tenant,
        customer,
        amount_minor=payload.amount,
        description=payload.description,
        channel=payload.channel,
        receipt_url=payload.receiptUrl,
        purchase_date=payload.purchaseDate,
        logged_by_user_id=ctx.user_id,
    )
    db.commit()
    db.refresh(purchase)
    return purchase


@router.get("", response_model=Page[PurchaseOut])
def list_purchases_route(
    page: int = 1,
    limit: int = 20,
    customerId: UUID | None = None,
    source: str | None = None,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    page, limit, offset = normalize_page(page, limit)
    items, total = list_purchases(
        db, ctx.tenant_id, offset=offset, limit=limit, customer_id=customerId, source=source
    )
    return {"data": items, "pagination": build_pagination(total, page, limit)}
