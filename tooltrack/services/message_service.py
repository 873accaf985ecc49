from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from tooltrack.models.message import ChatMessage, MessageRole
from tooltrack.schemas.pending import PendingChoice
from datetime import datetime, timezone
from typing import List, Optional

class MessageService:
    """Append-only conversation log, the only memory between two messages.

    ``tenant_id=None`` addresses the log of a phone that is not bound to a
    tenant yet.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    def _scope(self, query, tenant_id: Optional[int], phone: str):
        if tenant_id is None:
            return query.filter(ChatMessage.tenant_id.is_(None), ChatMessage.phone == phone)
        return query.filter(ChatMessage.tenant_id == tenant_id, ChatMessage.phone == phone)

    async def append(
        self,
        tenant_id: Optional[int],
        phone: str,
        role: MessageRole,
        content: str,
        pending: Optional[PendingChoice] = None,
    ) -> ChatMessage:
        message = ChatMessage(
            tenant_id=tenant_id,
            phone=phone,
            role=role,
            content=content,
            pending=pending.model_dump(mode="json") if pending else None,
            created_at=datetime.now(timezone.utc),
        )
        self.db.add(message)
        await self.db.commit()
        return message

    async def recent(self, tenant_id: Optional[int], phone: str, limit: int = 6) -> List[ChatMessage]:
        """Most recent messages, oldest first."""
        query = self._scope(select(ChatMessage), tenant_id, phone)
        result = await self.db.execute(
            query.order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc()).limit(limit)
        )
        messages = result.scalars().all()
        return list(reversed(messages))

    async def count(self, tenant_id: Optional[int], phone: str) -> int:
        query = self._scope(select(func.count(ChatMessage.id)), tenant_id, phone)
        result = await self.db.execute(query)
        return result.scalar_one()

