from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from tooltrack.models.tool import Tool
from tooltrack.schemas.tool import ToolCreate
from tooltrack.utils.validators import tool_key
from typing import List, Optional

class CatalogService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_tools(self, tenant_id: int) -> List[Tool]:
        result = await self.db.execute(
            select(Tool).filter(Tool.tenant_id == tenant_id).order_by(Tool.created_at, Tool.id)
        )
        return result.scalars().all()

    async def get_tool(self, tenant_id: int, tool_id: int) -> Optional[Tool]:
        result = await self.db.execute(
            select(Tool).filter(Tool.tenant_id == tenant_id, Tool.id == tool_id)
        )
        return result.scalars().first()

    async def add_tool(self, tenant_id: int, data: ToolCreate) -> Tool:
        tool = Tool(
            tenant_id=tenant_id,
            name=data.name,
            name_key=tool_key(data.name),
            aliases=data.aliases,
            group=data.group,
        )
        self.db.add(tool)
        await self.db.commit()
        await self.db.refresh(tool)
        return tool

    async def remove_tool(self, tenant_id: int, tool_id: int) -> bool:
        tool = await self.get_tool(tenant_id, tool_id)
        if not tool:
            return False
        await self.db.delete(tool)
        await self.db.commit()
        return True
