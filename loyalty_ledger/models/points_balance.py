import uuid
from sqlalchemy import Column, Integer, TIMESTAMP, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from loyalty_ledger.db import Base


class PointsBalance(Base):
    """Cached totals for one customer. Written only by the points ledger."""

    __tablename__ = "points_balances"

    __table_args__ = (UniqueConstraint("tenant_id", "customer_id", name="uq_points_balances_tenant_customer"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=False)

    current_balance = Column(Integer, nullable=False, default=0)
    total_earned = Column(Integer, nullable=False, default=0)
    total_redeemed = Column(Integer, nullable=False, default=0)

    # sequence of the last ledger entry appended for this customer
    last_sequence = Column(Integer, nullable=False, default=0)

    last_earned_at = Column(TIMESTAMP)
    last_redeemed_at = Column(TIMESTAMP)

    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())
