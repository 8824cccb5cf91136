from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from loyalty_ledger.db import get_db
from loyalty_ledger.deps.tenant import TenantContext, get_tenant_context
from loyalty_ledger.schemas.tenant import SettingsUpdate
from loyalty_ledger.services.tenant_service import resolve_settings, update_settings


router = APIRouter(prefix="/settings", tags=["settings"])


def _settings_body(tenant) -> dict:
    return {
        "tenantId": str(tenant.id),
        "businessName": tenant.business_name,
        "vendorCode": tenant.vendor_code,
        **resolve_settings(tenant),
    }


@router.get("")
def read_settings(ctx: TenantContext = Depends(get_tenant_context)):
    return _settings_body(ctx.tenant)


@router.patch("")
def patch_settings(
    payload: SettingsUpdate,
    ctx: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    tenant = update_settings(db, ctx.tenant, changes=payload.settings, home_currency=payload.homeCurrency)
    db.commit()
    db.refresh(tenant)
    return _settings_body(tenant)
