import uuid
from sqlalchemy import Column, String, TIMESTAMP, JSON
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from loyalty_ledger.db import Base


class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    business_name = Column(String(150), nullable=False)
    vendor_code = Column(String(12), nullable=False, unique=True)

    home_currency = Column(String(3), nullable=False, default="NGN")  # NGN / GBP / USD / EUR

    # welcome_bonus_*, burn_rate, notify_purchase, fraud_* overrides
    settings = Column(JSON, nullable=False, default=dict)

    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())
    deleted_at = Column(TIMESTAMP, nullable=True)
