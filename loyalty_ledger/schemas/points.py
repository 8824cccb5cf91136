from datetime import datetime
from typing import Any, Dict, Optional

from uuid import UUID

from pydantic import BaseModel, Field


class BalanceOut(BaseModel):
    customerId: UUID
    currentBalance: int
    totalEarned: int
    totalRedeemed: int


class PointsTransactionOut(BaseModel):
    id: UUID
    customer_id: UUID
    sequence: int
    type: str
    points: int
    balance_after: int
    description: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict, validation_alias="metadata_")
    created_by_user_id: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
