import uuid
from sqlalchemy import Column, Integer, BigInteger, String, TIMESTAMP, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from loyalty_ledger.db import Base, utcnow


class Purchase(Base):
    __tablename__ = "purchases"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False, index=True)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=False, index=True)

    amount_minor = Column(BigInteger, nullable=False)
    currency = Column(String(3), nullable=False)
    points_awarded = Column(Integer, nullable=False, default=0)

    source = Column(String(20), nullable=False, default="vendor")  # vendor | claim
    channel = Column(String(50))
    description = Column(String(500))
    receipt_url = Column(String(1000))

    claim_id = Column(UUID(as_uuid=True), ForeignKey("purchase_claims.id"), nullable=True)
    logged_by_user_id = Column(String(100))

    purchase_date = Column(TIMESTAMP, nullable=False)
    created_at = Column(TIMESTAMP, default=utcnow, server_default=func.now())
