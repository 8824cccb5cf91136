import uuid
from sqlalchemy import Column, String, Integer, BigInteger, Boolean, TIMESTAMP, ForeignKey, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from loyalty_ledger.db import Base


class Reward(Base):
    __tablename__ = "rewards"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False, index=True)

    name = Column(String(100), nullable=False)
    description = Column(String(500))
    category = Column(String(50))

    points_required = Column(Integer, nullable=False)
    monetary_value_minor = Column(BigInteger, nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)

    # NULL = unlimited
    stock_quantity = Column(Integer, nullable=True)
    max_redemptions_per_customer = Column(Integer, nullable=True)
    total_redemptions = Column(Integer, nullable=False, default=0)

    valid_from = Column(TIMESTAMP, nullable=True)
    valid_until = Column(TIMESTAMP, nullable=True)
    terms_and_conditions = Column(Text)

    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())
    deleted_at = Column(TIMESTAMP, nullable=True)
