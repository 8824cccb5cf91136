from datetime import datetime
from typing import Optional

from uuid import UUID

from pydantic import BaseModel, field_validator

from loyalty_ledger.schemas.common import to_naive_utc


class RewardCreate(BaseModel):
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    pointsRequired: int
    monetaryValue: Optional[int] = None  # minor units
    isActive: bool = True
    stockQuantity: Optional[int] = None
    maxRedemptionsPerCustomer: Optional[int] = None
    validFrom: Optional[datetime] = None
    validUntil: Optional[datetime] = None
    termsAndConditions: Optional[str] = None

    @field_validator("validFrom", "validUntil")
    @classmethod
    def naive_validity_window(cls, value):
        return to_naive_utc(value)


class RewardUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    pointsRequired: Optional[int] = None
    monetaryValue: Optional[int] = None
    isActive: Optional[bool] = None
    stockQuantity: Optional[int] = None
    maxRedemptionsPerCustomer: Optional[int] = None
    validFrom: Optional[datetime] = None
    validUntil: Optional[datetime] = None
    termsAndConditions: Optional[str] = None

    @field_validator("validFrom", "validUntil")
    @classmethod
    def naive_validity_window(cls, value):
        return to_naive_utc(value)


# request field -> Reward column
REWARD_FIELD_MAP = {
    "name": "name",
    "description": "description",
    "category": "category",
    "pointsRequired": "points_required",
    "monetaryValue": "monetary_value_minor",
    "isActive": "is_active",
    "stockQuantity": "stock_quantity",
    "maxRedemptionsPerCustomer": "max_redemptions_per_customer",
    "validFrom": "valid_from",
    "validUntil": "valid_until",
    "termsAndConditions": "terms_and_conditions",
}


def to_reward_values(data: dict) -> dict:
    return {REWARD_FIELD_MAP[k]: v for k, v in data.items() if k in REWARD_FIELD_MAP}


class RewardOut(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    points_required: int
    monetary_value_minor: Optional[int] = None
    is_active: bool
    stock_quantity: Optional[int] = None
    max_redemptions_per_customer: Optional[int] = None
    total_redemptions: int = 0
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    terms_and_conditions: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RedeemRequest(BaseModel):
    customerId: UUID
