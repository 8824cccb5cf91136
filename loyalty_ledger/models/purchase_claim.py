import uuid
from sqlalchemy import Column, BigInteger, String, TIMESTAMP, ForeignKey, JSON
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from loyalty_ledger.db import Base, utcnow


class PurchaseClaim(Base):
    __tablename__ = "purchase_claims"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False, index=True)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=False, index=True)

    phone_number = Column(String(32))
    amount_minor = Column(BigInteger, nullable=False)
    purchase_date = Column(TIMESTAMP, nullable=False)
    channel = Column(String(50), nullable=False, default="physical_store")
    receipt_url = Column(String(1000))
    description = Column(String(500))

    fraud_flags = Column(JSON, nullable=False, default=list)

    status = Column(String(20), nullable=False, default="pending")
    # pending | approved | rejected | expired
    rejection_reason = Column(String(500))

    reviewed_by_user_id = Column(String(100))
    reviewed_at = Column(TIMESTAMP)
    purchase_id = Column(UUID(as_uuid=True), nullable=True)

    expires_at = Column(TIMESTAMP, nullable=False)
    created_at = Column(TIMESTAMP, default=utcnow, server_default=func.now())
