import uuid
from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from loyalty_ledger.db import get_db
from loyalty_ledger.models.tenant import Tenant
from loyalty_ledger.services.tenant_service import get_tenant


@dataclass
class TenantContext:
    tenant: Tenant
    user_id: str | None = None

    @property
    def tenant_id(self):
        return self.tenant.id


def get_tenant_context(
    x_tenant_id: str | None = Header(default=None, alias="X-Tenant-Id"),
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    db: Session = Depends(get_db),
) -> TenantContext:
    # Authentication happens upstream; the caller's tenant/user are trusted.
    if not x_tenant_id:
        raise HTTPException(
            status_code=400,
            detail="Missing tenant context. Provide X-Tenant-Id header.",
        )
    try:
        tenant_id = uuid.UUID(x_tenant_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="X-Tenant-Id must be a UUID")

    return TenantContext(tenant=get_tenant(db, tenant_id), user_id=x_user_id)
