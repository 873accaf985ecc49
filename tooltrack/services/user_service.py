from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from tooltrack.models.user import User
from tooltrack.utils.validators import normalize_name
from datetime import datetime, timezone
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)

class UserService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user(self, tenant_id: int, phone: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).filter(User.tenant_id == tenant_id, User.phone == phone)
        )
        return result.scalars().first()

    async def list_bindings(self, phone: str) -> List[User]:
        """Every tenant membership of a phone, most recent first."""
        result = await self.db.execute(
            select(User).filter(User.phone == phone).order_by(User.registered_at.desc(), User.id.desc())
        )
        return result.scalars().all()

    async def create_pending_user(self, tenant_id: int, phone: str) -> User:
        user = User(tenant_id=tenant_id, phone=phone, name="", registered_at=datetime.now(timezone.utc))
        self.db.add(user)
        await self.db.commit()
        await self.db.refresh(user)
        logger.info("Pending user %s created for tenant %s", phone, tenant_id)
        return user

    async def get_or_create_user(self, tenant_id: int, phone: str):
        """Returns (user, created)."""
        user = await self.get_user(tenant_id, phone)
        if user:
            return user, False
        return await self.create_pending_user(tenant_id, phone), True

    async def register_name(self, user: User, name: str) -> User:
        user.name = normalize_name(name)
        user.registered_at = datetime.now(timezone.utc)
        await self.db.commit()
        await self.db.refresh(user)
        logger.info("Registered %s as %s (tenant %s)", user.phone, user.name, user.tenant_id)
        return user

    async def set_group(self, user: User, group: str) -> User:
        user.group = group
        await self.db.commit()
        await self.db.refresh(user)
        return user
