import uuid
from sqlalchemy import Column, String, Integer, Boolean, TIMESTAMP, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from loyalty_ledger.db import Base, utcnow


class Redemption(Base):
    __tablename__ = "redemptions"

    __table_args__ = (UniqueConstraint("tenant_id", "idempotency_key", name="uq_redemptions_tenant_idempotency_key"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False, index=True)
    reward_id = Column(UUID(as_uuid=True), ForeignKey("rewards.id"), nullable=False)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=False, index=True)

    redemption_code = Column(String(20), nullable=False, unique=True)
    points_used = Column(Integer, nullable=False)
    # whether a unit of reward stock was taken at creation
    stock_reserved = Column(Boolean, nullable=False, default=False)

    status = Column(String(20), nullable=False, default="pending")
    # pending | fulfilled | cancelled | expired

    idempotency_key = Column(String(150), nullable=True)

    verified_at = Column(TIMESTAMP)
    verified_by_user_id = Column(String(100))
    fulfilled_at = Column(TIMESTAMP)
    fulfilment_notes = Column(String(500))
    cancelled_at = Column(TIMESTAMP)
    cancellation_reason = Column(String(500))

    expires_at = Column(TIMESTAMP, nullable=False)
    created_at = Column(TIMESTAMP, default=utcnow, server_default=func.now())
