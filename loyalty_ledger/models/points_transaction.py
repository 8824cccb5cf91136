import uuid
from sqlalchemy import Column, Integer, String, TIMESTAMP, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from loyalty_ledger.db import Base, utcnow


class PointsTransaction(Base):
    __tablename__ = "points_transactions"

    __table_args__ = (UniqueConstraint("customer_id", "sequence", name="uq_points_transactions_customer_sequence"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=False, index=True)

    # per-customer insertion order
    sequence = Column(Integer, nullable=False)

    type = Column(String(20), nullable=False)  # earned / redeemed / expired / adjusted
    points = Column(Integer, nullable=False)  # signed
    balance_after = Column(Integer, nullable=False)

    description = Column(String(255))
    # purchaseId, claimId, redemptionId, adjustedBy ...
    metadata_ = Column("metadata", JSON, nullable=True)

    created_by_user_id = Column(String(100))

    created_at = Column(TIMESTAMP, default=utcnow, server_default=func.now())
