import logging
from dataclasses import dataclass
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from tooltrack.models.tenant import Tenant, TenantStatus
from tooltrack.schemas.tenant import TenantCreate
from tooltrack.services.user_service import UserService
from tooltrack.utils.validators import normalize_join_code, normalize_phone

logger = logging.getLogger(__name__)

@dataclass
class TenantResolution:
    tenant: Optional[Tenant] = None
    # A tenant matched the inbound address or the phone's binding, but it is disabled
    disabled: bool = False

class TenantService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_tenant(self, data: TenantCreate) -> Tenant:
        tenant = Tenant(**data.model_dump())
        self.db.add(tenant)
        await self.db.commit()
        await self.db.refresh(tenant)
        logger.info("Created tenant %s (%s)", tenant.slug, tenant.id)
        return tenant

    async def get_tenant(self, tenant_id: int) -> Optional[Tenant]:
        result = await self.db.execute(select(Tenant).filter(Tenant.id == tenant_id))
        return result.scalars().first()

    async def get_by_slug(self, slug: str) -> Optional[Tenant]:
        result = await self.db.execute(select(Tenant).filter(Tenant.slug == slug.strip().lower()))
        return result.scalars().first()

    async def get_by_join_code(self, code: str) -> Optional[Tenant]:
        code = normalize_join_code(code)
        if not code:
            return None
        result = await self.db.execute(
            select(Tenant).filter(Tenant.join_code == code, Tenant.status == TenantStatus.ACTIVE)
        )
        return result.scalars().first()

    async def get_by_routing_address(self, address: str) -> Optional[Tenant]:
        address = normalize_phone(address)
        if not address:
            return None
        result = await self.db.execute(select(Tenant).filter(Tenant.routing_address == address))
        return result.scalars().first()

    async def set_status(self, tenant_id: int, status: TenantStatus) -> Optional[Tenant]:
        tenant = await self.get_tenant(tenant_id)
        if tenant:
            tenant.status = status
            await self.db.commit()
            await self.db.refresh(tenant)
        return tenant

    async def resolve(self, routing_address: str, phone: str) -> TenantResolution:
        """Find the tenant an inbound message belongs to.

        A tenant's own number wins. On the shared number the phone's most
        recent binding is used. Disabled tenants never resolve.
        """
        tenant = await self.get_by_routing_address(routing_address)
        if tenant is not None:
            if tenant.is_active:
                return TenantResolution(tenant=tenant)
            return TenantResolution(disabled=True)

        users = await UserService(self.db).list_bindings(phone)
        for user in users:
            bound = await self.get_tenant(user.tenant_id)
            if bound is not None and bound.is_active:
                return TenantResolution(tenant=bound)
        return TenantResolution(disabled=bool(users))
