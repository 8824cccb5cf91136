from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from loyalty_ledger.db import get_db
from loyalty_ledger.deps.tenant import TenantContext, get_tenant_context
from loyalty_ledger.pagination import build_pagination, normalize_page
from loyalty_ledger.schemas.common import Page
from loyalty_ledger.schemas.customer import (
    AdjustPointsRequest,
    BlockRequest,
    CustomerCreate,
    CustomerDetailOut,
    CustomerOut,
)
from loyalty_ledger.schemas.points import BalanceOut, PointsTransactionOut
from loyalty_ledger.services.contact_service import (
    adjust_points,
    create_customer,
    get_customer,
    list_customers,
    set_blocked,
    soft_delete_customer,
)
from loyalty_ledger.services.wallet_service import get_balance, list_transactions


router = APIRouter(prefix="/customers", tags=["customers"])


def _detail(db: Session, ctx: TenantContext, customer) -> CustomerDetailOut:
    snapshot = get_balance(db, ctx.tenant_id, customer.id)
    return CustomerDetailOut(
        **CustomerOut.model_validate(customer).model_dump(),
        current_balance=snapshot.current,
        total_earned=snapshot.total_earned,
        total_redeemed=snapshot.total_redeemed,
    )


@router.post("", response_model=CustomerDetailOut, status_code=201)
def create_customer_route(
    payload: CustomerCreate,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    customer = create_customer(
        db,
        ctx.tenant,
        phone_number=payload.phoneNumber,
        first_name=payload.firstName,
        last_name=payload.lastName,
        email=payload.email,
        whatsapp_name=payload.whatsappName,
        opted_in=payload.optedIn,
        created_by_user_id=ctx.user_id,
    )
    db.commit()
    db.refresh(customer)
    return _detail(db, ctx, customer)


@router.get("", response_model=Page[CustomerOut])
def list_customers_route(
    page: int = 1,
    limit: int = 20,
    status: str | None = None,
    search: str | None = None,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    page, limit, offset = normalize_page(page, limit)
    items, total = list_customers(db, ctx.tenant_id, offset=offset, limit=limit, status=status, search=search)
    return {"data": items, "pagination": build_pagination(total, page, limit)}


@router.get("/{customer_id}", response_model=CustomerDetailOut)
def get_customer_route(
    customer_id: UUID,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    customer = get_customer(db, ctx.tenant_id, customer_id)
    return _detail(db, ctx, customer)


@router.delete("/{customer_id}")
def delete_customer_route(
    customer_id: UUID,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    customer = get_customer(db, ctx.tenant_id, customer_id)
    soft_delete_customer(db, customer)
    db.commit()
    return {"message": "Customer deleted successfully"}


@router.get("/{customer_id}/points", response_model=BalanceOut)
def get_customer_points(
    customer_id: UUID,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    customer = get_customer(db, ctx.tenant_id, customer_id)
    snapshot = get_balance(db, ctx.tenant_id, customer.id)
    return {
        "customerId": customer.id,
        "currentBalance": snapshot.current,
        "totalEarned": snapshot.total_earned,
        "totalRedeemed": snapshot.total_redeemed,
    }


@router.get("/{customer_id}/transactions", response_model=Page[PointsTransactionOut])
def list_customer_transactions(
    customer_id: UUID,
    page: int = 1,
    limit: int = 20,
    type: str | None = None,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    customer = get_customer(db, ctx.tenant_id, customer_id)
    page, limit, offset = normalize_page(page, limit)
    items, total = list_transactions(db, ctx.tenant_id, customer.id, offset=offset, limit=limit, type=type)
    return {"data": items, "pagination": build_pagination(total, page, limit)}


@router.post("/{customer_id}/adjust-points")
def adjust_customer_points(
    customer_id: UUID,
    payload: AdjustPointsRequest,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    customer = get_customer(db, ctx.tenant_id, customer_id)
    entry = adjust_points(
        db,
        ctx.tenant,
        customer,
        points=payload.points,
        adjustment_type=payload.adjustmentType,
        description=payload.description,
        adjusted_by_user_id=ctx.user_id,
    )
    db.commit()
    db.refresh(entry)
    return {
        "transaction": PointsTransactionOut.model_validate(entry),
        "newBalance": entry.balance_after,
    }


@router.post("/{customer_id}/block", response_model=CustomerOut)
def block_customer(
    customer_id: UUID,
    payload: BlockRequest,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    customer = get_customer(db, ctx.tenant_id, customer_id)
    set_blocked(db, customer, blocked=payload.block, reason=payload.reason)
    db.commit()
    db.refresh(customer)
    return customer
