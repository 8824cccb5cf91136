from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from loyalty_ledger.db import SessionLocal, get_db
from loyalty_ledger.deps.tenant import TenantContext, get_tenant_context
from loyalty_ledger.services.contact_service import get_customer
from loyalty_ledger.services.expiry_worker import run_sweep_once
from loyalty_ledger.services.notification_service import build_default_gateway
from loyalty_ledger.services.wallet_service import audit_balance


router = APIRouter(prefix="/admin", tags=["admin"])


def get_session_factory():
    return SessionLocal


@router.post("/expire")
def admin_run_expiry(session_factory=Depends(get_session_factory)):
    stats = run_sweep_once(session_factory, gateway=build_default_gateway())
    return {
        "redemptionsExpired": stats.redemptions_expired,
        "claimsExpired": stats.claims_expired,
        "pointsExpired": stats.points_expired,
        "notifications": stats.notifications,
        "failedSteps": stats.failed_steps,
    }


@router.get("/customers/{customer_id}/audit")
def admin_audit_balance(
    customer_id: UUID,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    customer = get_customer(db, ctx.tenant_id, customer_id)
    return {"customerId": str(customer.id), **audit_balance(db, ctx.tenant_id, customer.id)}
