from datetime import datetime
from typing import Literal, Optional

from uuid import UUID

from pydantic import BaseModel


class CustomerCreate(BaseModel):
    phoneNumber: str
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    email: Optional[str] = None
    whatsappName: Optional[str] = None
    optedIn: bool = True


class CustomerOut(BaseModel):
    id: UUID
    tenant_id: UUID
    phone_number: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    whatsapp_name: Optional[str] = None
    opted_in: bool
    opted_in_at: Optional[datetime] = None
    loyalty_status: str
    notes: Optional[str] = None
    total_purchases: int = 0
    total_spent_minor: int = 0
    last_purchase_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CustomerDetailOut(CustomerOut):
    current_balance: int = 0
    total_earned: int = 0
    total_redeemed: int = 0


class AdjustPointsRequest(BaseModel):
    points: int
    adjustmentType: Literal["add", "subtract"]
    description: Optional[str] = None


class BlockRequest(BaseModel):
    block: bool
    reason: Optional[str] = None
