from datetime import datetime
from typing import Optional

from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field, field_validator

from loyalty_ledger.schemas.common import to_naive_utc


class PurchaseCreate(BaseModel):
    customerId: UUID
    # minor units; older clients send amountNgn
    amount: int = Field(validation_alias=AliasChoices("amount", "amountNgn"))
    description: Optional[str] = None
    channel: Optional[str] = None
    receiptUrl: Optional[str] = None
    purchaseDate: Optional[datetime] = None

    @field_validator("purchaseDate")
    @classmethod
    def naive_purchase_date(cls, value):
        return to_naive_utc(value)


class PurchaseOut(BaseModel):
    id: UUID
    customer_id: UUID
    amount_minor: int
    currency: str
    points_awarded: int
    source: str
    channel: Optional[str] = None
    description: Optional[str] = None
    receipt_url: Optional[str] = None
    claim_id: Optional[UUID] = None
    logged_by_user_id: Optional[str] = None
    purchase_date: datetime
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
