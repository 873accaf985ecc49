from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from tooltrack.database import Base

class ActiveCheckout(Base):
    __tablename__ = "active_checkouts"
    # At most one open checkout per tool name (case-insensitive) per tenant
    __table_args__ = (UniqueConstraint("tenant_id", "tool_key", name="uq_active_checkouts_tenant_tool"),)

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    tool = Column(String, nullable=False)
    tool_key = Column(String, nullable=False)
    person = Column(String, nullable=False)
    phone = Column(String, nullable=False, index=True)
    group = Column(String, nullable=True)
    checked_out_at = Column(DateTime(timezone=True), nullable=False)

class HistoryEntry(Base):
    __tablename__ = "checkout_history"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    tool = Column(String, nullable=False)
    person = Column(String, nullable=False)
    phone = Column(String, nullable=False, index=True)
    group = Column(String, nullable=True)
    checked_out_at = Column(DateTime(timezone=True), nullable=False)
    returned_at = Column(DateTime(timezone=True), nullable=False)
