from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, Text, Enum
from tooltrack.database import Base
import enum

class MessageRole(str, enum.Enum):
    USER = "user"
    ASSISTANT = "assistant"

class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, index=True)
    # Null until the phone is bound to a tenant (join-code exchange)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=True, index=True)
    phone = Column(String, nullable=False, index=True)
    role = Column(Enum(MessageRole), nullable=False)
    content = Column(Text, nullable=False)
    # Question this assistant message left open, see schemas.pending
    pending = Column(JSON(none_as_null=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
