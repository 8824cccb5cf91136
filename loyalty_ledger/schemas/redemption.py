from datetime import datetime
from typing import Optional

from uuid import UUID

from pydantic import BaseModel


class VerifyRequest(BaseModel):
    redemptionCode: str


class FulfillRequest(BaseModel):
    notes: Optional[str] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class RedemptionOut(BaseModel):
    id: UUID
    reward_id: UUID
    customer_id: UUID
    redemption_code: str
    points_used: int
    status: str
    verified_at: Optional[datetime] = None
    verified_by_user_id: Optional[str] = None
    fulfilled_at: Optional[datetime] = None
    fulfilment_notes: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    expires_at: datetime
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RedemptionDetailOut(RedemptionOut):
    reward_name: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
