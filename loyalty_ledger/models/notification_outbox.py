import uuid
from sqlalchemy import Column, Integer, String, TIMESTAMP, ForeignKey, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from loyalty_ledger.db import Base, utcnow


class NotificationOutbox(Base):
    __tablename__ = "notification_outbox"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=False)

    phone_number = Column(String(32), nullable=False)
    kind = Column(String(50), nullable=False)  # purchase_logged, claim_approved, redemption_created ...
    message = Column(Text, nullable=False)

    status = Column(String(20), nullable=False, default="pending")  # pending | sent | failed
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(String(2000))

    created_at = Column(TIMESTAMP, default=utcnow, server_default=func.now())
    sent_at = Column(TIMESTAMP)
