"""
Fixed earn rates and point valuation.

Earn rate is fixed per currency and is not tenant-configurable:
    points = floor(amount_major / EARN_UNIT)

All arithmetic is done on integer minor units so a preview computed by a
client from the same minor-unit amount always matches the server.
"""
from decimal import Decimal, ROUND_CEILING

from sqlalchemy.orm import Session

from loyalty_ledger.errors import NotFoundError, ValidationError
from loyalty_ledger.models.tenant import Tenant


# major units that earn one point
EARN_UNITS = {
    "GBP": 1,
    "USD": 1,
    "EUR": 1,
    "NGN": 1000,
}

CURRENCY_MINOR_UNITS = {
    "GBP": 100,
    "USD": 100,
    "EUR": 100,
    "NGN": 100,
}

SUPPORTED_CURRENCIES = tuple(EARN_UNITS.keys())

BURN_RATE_MIN = Decimal("0.01")
BURN_RATE_MAX = Decimal("0.05")
BURN_RATE_DEFAULT = Decimal("0.01")

# major units
MINIMUM_REWARD_VALUE = {
    "GBP": 5,
    "USD": 5,
    "EUR": 5,
    "NGN": 500,
}


def normalize_currency(currency: str | None) -> str:
    code = (currency or "").strip().upper()
    if code not in EARN_UNITS:
        raise ValidationError(f"Unsupported currency: {currency}", field="currency")
    return code


def earn_unit(currency: str) -> int:
    return EARN_UNITS[normalize_currency(currency)]


def earn_unit_minor(currency: str) -> int:
    code = normalize_currency(currency)
    return EARN_UNITS[code] * CURRENCY_MINOR_UNITS[code]


def points_for_amount(currency: str, amount_minor: int) -> int:
    if amount_minor is None or int(amount_minor) < 0:
        raise ValidationError("Amount must be a non-negative integer of minor units", field="amount")
    return int(amount_minor) // earn_unit_minor(currency)


def points_for_tenant_amount(db: Session, tenant_id, amount_minor: int) -> int:
    tenant = db.query(Tenant).filter(Tenant.id == tenant_id, Tenant.deleted_at.is_(None)).first()
    if not tenant:
        raise NotFoundError("Tenant", tenant_id)
    return points_for_amount(tenant.home_currency, amount_minor)


def validate_burn_rate(burn_rate) -> Decimal:
    try:
        rate = Decimal(str(burn_rate))
    except Exception:
        raise ValidationError("Burn rate must be a number", field="burn_rate")
    if not rate.is_finite():
        raise ValidationError("Burn rate must be a number", field="burn_rate")
    if rate < BURN_RATE_MIN:
        raise ValidationError(f"Burn rate cannot be less than {BURN_RATE_MIN * 100}%", field="burn_rate")
    if rate > BURN_RATE_MAX:
        raise ValidationError(f"Burn rate cannot exceed {BURN_RATE_MAX * 100}%", field="burn_rate")
    return rate


def point_value(currency: str, burn_rate=BURN_RATE_DEFAULT) -> Decimal:
    """Monetary value of one point, in major units."""
    rate = Decimal(str(burn_rate))
    rate = max(BURN_RATE_MIN, min(BURN_RATE_MAX, rate))
    return Decimal(earn_unit(currency)) * rate


def suggested_points(target_value_major, currency: str, burn_rate=BURN_RATE_DEFAULT) -> int:
    value = point_value(currency, burn_rate)
    target = Decimal(str(target_value_major))
    if target <= 0:
        return 1
    points = (target / value).to_integral_value(rounding=ROUND_CEILING)
    return max(1, int(points))


def minimum_reward_value_minor(currency: str) -> int:
    code = normalize_currency(currency)
    return MINIMUM_REWARD_VALUE[code] * CURRENCY_MINOR_UNITS[code]
