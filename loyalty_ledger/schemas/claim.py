from datetime import datetime
from typing import List, Literal, Optional

from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field, field_validator

from loyalty_ledger.schemas.common import to_naive_utc


class ClaimSubmit(BaseModel):
    vendorCode: str
    phoneNumber: str
    amount: int = Field(validation_alias=AliasChoices("amount", "amountNgn"))
    purchaseDate: datetime
    channel: Optional[str] = None
    receiptUrl: Optional[str] = None
    description: Optional[str] = None

    @field_validator("purchaseDate")
    @classmethod
    def naive_purchase_date(cls, value):
        return to_naive_utc(value)


class ClaimReview(BaseModel):
    action: Literal["approve", "reject"]
    rejectionReason: Optional[str] = None


class ClaimOut(BaseModel):
    id: UUID
    customer_id: UUID
    phone_number: Optional[str] = None
    amount_minor: int
    purchase_date: datetime
    channel: str
    receipt_url: Optional[str] = None
    description: Optional[str] = None
    fraud_flags: List[str] = Field(default_factory=list)
    status: str
    rejection_reason: Optional[str] = None
    reviewed_by_user_id: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    purchase_id: Optional[UUID] = None
    expires_at: datetime
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ClaimListItem(ClaimOut):
    customer_name: Optional[str] = None
    total_claims: int = 0
    rejected_claims: int = 0
    rejection_rate: float = 0.0
