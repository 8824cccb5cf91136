import uuid
from sqlalchemy import Column, String, TIMESTAMP, Boolean, Integer, BigInteger, ForeignKey, JSON, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from loyalty_ledger.db import Base, utcnow


class Customer(Base):
    __tablename__ = "customers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False, index=True)
    phone_number = Column(String(32), nullable=False)

    first_name = Column(String(100))
    last_name = Column(String(100))
    email = Column(String(255))
    whatsapp_name = Column(String(100))

    opted_in = Column(Boolean, nullable=False, default=False)
    opted_in_at = Column(TIMESTAMP)

    loyalty_status = Column(String(20), nullable=False, default="active")  # active | blocked
    notes = Column(Text)

    # last active vendor, bot session
    conversation_state = Column(JSON, nullable=True)

    total_purchases = Column(Integer, nullable=False, default=0)
    total_spent_minor = Column(BigInteger, nullable=False, default=0)
    last_purchase_at = Column(TIMESTAMP)

    created_at = Column(TIMESTAMP, default=utcnow, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())
    deleted_at = Column(TIMESTAMP, nullable=True)

    @property
    def display_name(self) -> str:
        name = f"{self.first_name or self.whatsapp_name or ''} {self.last_name or ''}".strip()
        return name or self.phone_number
