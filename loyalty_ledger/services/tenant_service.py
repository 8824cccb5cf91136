import secrets
import string
from decimal import Decimal

from sqlalchemy.orm import Session

from loyalty_ledger.config import settings as app_settings
from loyalty_ledger.errors import NotFoundError, ValidationError
from loyalty_ledger.models.tenant import Tenant
from loyalty_ledger.services.earn_rate_service import (
    BURN_RATE_DEFAULT,
    normalize_currency,
    point_value,
    validate_burn_rate,
)


VENDOR_CODE_ALPHABET = string.ascii_uppercase + string.digits
VENDOR_CODE_LENGTH = 6

FRAUD_SETTING_KEYS = {
    "fraud_high_amount_minor": int,
    "fraud_high_amount_multiplier": float,
    "fraud_new_customer_days": int,
    "fraud_new_customer_min_purchases": int,
    "fraud_rejection_rate_percent": float,
    "fraud_repeated_amount_window": int,
    "fraud_repeated_amount_min": int,
}


def get_tenant(db: Session, tenant_id) -> Tenant:
    tenant = db.query(Tenant).filter(Tenant.id == tenant_id, Tenant.deleted_at.is_(None)).first()
    if not tenant:
        raise NotFoundError("Tenant", tenant_id)
    return tenant


def get_tenant_by_vendor_code(db: Session, vendor_code: str) -> Tenant:
    code = (vendor_code or "").strip().upper()
    tenant = db.query(Tenant).filter(Tenant.vendor_code == code, Tenant.deleted_at.is_(None)).first()
    if not tenant:
        raise NotFoundError("Business", code)
    return tenant


def _generate_vendor_code(db: Session) -> str:
    while True:
        code = "".join(secrets.choice(VENDOR_CODE_ALPHABET) for _ in range(VENDOR_CODE_LENGTH))
        if not db.query(Tenant.id).filter(Tenant.vendor_code == code).first():
            return code


def create_tenant(db: Session, *, business_name: str, home_currency: str = "NGN", settings: dict | None = None) -> Tenant:
    if not business_name or not business_name.strip():
        raise ValidationError("Business name is required", field="business_name")

    tenant = Tenant(
        business_name=business_name.strip(),
        vendor_code=_generate_vendor_code(db),
        home_currency=normalize_currency(home_currency),
        settings=_validated_settings({}, settings or {}),
    )
    db.add(tenant)
    db.flush()
    return tenant


# ============================================================
# SETTINGS
# ============================================================

def resolve_settings(tenant: Tenant) -> dict:
    """Tenant settings merged over process defaults."""
    raw = dict(tenant.settings or {})

    burn_rate = Decimal(str(raw.get("burn_rate", BURN_RATE_DEFAULT)))
    resolved = {
        "homeCurrency": tenant.home_currency,
        "welcomeBonusEnabled": bool(raw.get("welcome_bonus_enabled", False)),
        "welcomeBonusPoints": int(raw.get("welcome_bonus_points", app_settings.default_welcome_bonus_points)),
        "burnRate": float(burn_rate),
        "pointValue": float(point_value(tenant.home_currency, burn_rate)),
        "notifyPurchase": bool(raw.get("notify_purchase", True)),
        "pointsExpiryEnabled": bool(raw.get("points_expiry_enabled", False)),
        "pointsExpiryDays": int(raw.get("points_expiry_days", app_settings.default_points_expiry_days)),
        "notifyPointsExpiry": bool(raw.get("notify_points_expiry", True)),
    }
    for key in FRAUD_SETTING_KEYS:
        resolved[key] = raw.get(key, getattr(app_settings, key))
    return resolved


def _validated_settings(current: dict, changes: dict) -> dict:
    merged = dict(current)

    for key, value in changes.items():
        if value is None:
            merged.pop(key, None)
            continue

        if key == "burn_rate":
            merged[key] = str(validate_burn_rate(value))
        elif key in ("welcome_bonus_enabled", "notify_purchase", "points_expiry_enabled", "notify_points_expiry"):
            merged[key] = bool(value)
        elif key == "welcome_bonus_points":
            if int(value) < 0:
                raise ValidationError("welcome_bonus_points must be >= 0", field=key)
            merged[key] = int(value)
        elif key == "points_expiry_days":
            try:
                days = int(value)
            except (TypeError, ValueError):
                raise ValidationError("points_expiry_days must be a whole number", field=key)
            if days < 1:
                raise ValidationError("points_expiry_days must be at least 1", field=key)
            merged[key] = days
        elif key in FRAUD_SETTING_KEYS:
            cast = FRAUD_SETTING_KEYS[key]
            try:
                typed = cast(value)
            except (TypeError, ValueError):
                raise ValidationError(f"{key} must be a number", field=key)
            if typed < 0:
                raise ValidationError(f"{key} must be >= 0", field=key)
            merged[key] = typed
        else:
            raise ValidationError(f"Unknown setting: {key}", field=key)

    return merged


def update_settings(db: Session, tenant: Tenant, *, changes: dict, home_currency: str | None = None) -> Tenant:
    tenant.settings = _validated_settings(tenant.settings or {}, changes)
    if home_currency is not None:
        tenant.home_currency = normalize_currency(home_currency)
    db.flush()
    return tenant
