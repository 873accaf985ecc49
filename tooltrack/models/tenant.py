from sqlalchemy import Column, Integer, String, DateTime, Enum, Boolean, JSON
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from tooltrack.database import Base
import enum

class TenantStatus(str, enum.Enum):
    ACTIVE = "active"
    DISABLED = "disabled"

class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(Integer, primary_key=True, index=True)
    slug = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=False)
    # Upper-cased; phones texting the shared number send it to join
    join_code = Column(String, unique=True, nullable=True, index=True)
    # Tenant's own number, normalized to +E.164
    routing_address = Column(String, unique=True, nullable=True, index=True)
    status = Column(Enum(TenantStatus), nullable=False, default=TenantStatus.ACTIVE)

    groups_enabled = Column(Boolean, nullable=False, default=False)
    group_names = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    users = relationship("User", back_populates="tenant", cascade="all, delete-orphan")
    tools = relationship("Tool", back_populates="tenant", cascade="all, delete-orphan")

    @property
    def is_active(self) -> bool:
        return self.status == TenantStatus.ACTIVE

    @property
    def requires_group(self) -> bool:
        return bool(self.groups_enabled and self.group_names)
