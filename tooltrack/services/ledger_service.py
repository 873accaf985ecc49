import logging
from datetime import datetime, timezone
from typing import List, Optional
from sqlalchemy import delete, insert
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from tooltrack.models.checkout import ActiveCheckout, HistoryEntry
from tooltrack.schemas.ledger import (
    BulkCheckinResult,
    CheckinResult,
    CheckoutRecord,
    CheckoutResult,
    CheckoutStatus,
    HistoryRecord,
)
from tooltrack.utils.validators import tool_key

logger = logging.getLogger(__name__)

# Dialects with INSERT .. ON CONFLICT DO NOTHING
_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}

def _now() -> datetime:
    return datetime.now(timezone.utc)

class LedgerService:
    """Custody ledger of one store session.

    Checkout is a single conditional write against the unique
    (tenant_id, tool_key) constraint, so two racing requests can never both
    hold a tool.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_active(self, tenant_id: int) -> List[ActiveCheckout]:
        result = await self.db.execute(
            select(ActiveCheckout)
            .filter(ActiveCheckout.tenant_id == tenant_id)
            .order_by(ActiveCheckout.checked_out_at.desc(), ActiveCheckout.id.desc())
        )
        return result.scalars().all()

    async def list_by_phone(self, tenant_id: int, phone: str) -> List[ActiveCheckout]:
        result = await self.db.execute(
            select(ActiveCheckout)
            .filter(ActiveCheckout.tenant_id == tenant_id, ActiveCheckout.phone == phone)
            .order_by(ActiveCheckout.checked_out_at, ActiveCheckout.id)
        )
        return result.scalars().all()

    async def get_holder(self, tenant_id: int, tool: str) -> Optional[ActiveCheckout]:
        result = await self.db.execute(
            select(ActiveCheckout).filter(
                ActiveCheckout.tenant_id == tenant_id,
                ActiveCheckout.tool_key == tool_key(tool),
            )
        )
        return result.scalars().first()

    async def recent_history(self, tenant_id: int, limit: int = 20) -> List[HistoryEntry]:
        result = await self.db.execute(
            select(HistoryEntry)
            .filter(HistoryEntry.tenant_id == tenant_id)
            .order_by(HistoryEntry.returned_at.desc(), HistoryEntry.id.desc())
            .limit(limit)
        )
        return result.scalars().all()

    async def _insert_if_free(self, values: dict) -> bool:
        dialect = self.db.bind.dialect.name if self.db.bind is not None else ""
        insert_fn = _UPSERT_INSERTS.get(dialect)
        if insert_fn is not None:
            stmt = insert_fn(ActiveCheckout.__table__).values(**values).on_conflict_do_nothing(
                index_elements=["tenant_id", "tool_key"]
            )
            result = await self.db.execute(stmt)
            await self.db.commit()
            return result.rowcount == 1

        try:
            await self.db.execute(insert(ActiveCheckout.__table__).values(**values))
            await self.db.commit()
            return True
        except IntegrityError:
            await self.db.rollback()
            return False

    async def checkout(
        self, tenant_id: int, tool: str, person: str, phone: str, group: Optional[str] = None
    ) -> CheckoutResult:
        values = dict(
            tenant_id=tenant_id,
            tool=tool,
            tool_key=tool_key(tool),
            person=person,
            phone=phone,
            group=group,
            checked_out_at=_now(),
        )
        # A holder found after a refused insert may have returned it already; retry once
        for _ in range(2):
            if await self._insert_if_free(values):
                logger.info("Tenant %s: %s checked out to %s (%s)", tenant_id, tool, person, phone)
                return CheckoutResult(status=CheckoutStatus.CHECKED_OUT, record=CheckoutRecord(**values))

            holder = await self.get_holder(tenant_id, tool)
            if holder is not None:
                status = CheckoutStatus.ALREADY_YOURS if holder.phone == phone else CheckoutStatus.HELD_BY_OTHER
                return CheckoutResult(status=status, record=CheckoutRecord.model_validate(holder))

        raise RuntimeError(f"Could not check out {tool!r} for tenant {tenant_id}")

    async def _archive(self, snapshot: CheckoutRecord) -> Optional[HistoryRecord]:
        """Move one row from active to history in a single transaction."""
        result = await self.db.execute(
            delete(ActiveCheckout.__table__).where(ActiveCheckout.__table__.c.id == snapshot.id)
        )
        if result.rowcount != 1:
            # Returned by a concurrent request in the meantime
            await self.db.rollback()
            return None

        returned_at = _now()
        self.db.add(HistoryEntry(
            tenant_id=snapshot.tenant_id,
            tool=snapshot.tool,
            person=snapshot.person,
            phone=snapshot.phone,
            group=snapshot.group,
            checked_out_at=snapshot.checked_out_at,
            returned_at=returned_at,
        ))
        await self.db.commit()
        logger.info("Tenant %s: %s returned by %s", snapshot.tenant_id, snapshot.tool, snapshot.person)
        return HistoryRecord(**snapshot.model_dump(), returned_at=returned_at)

    async def checkin(self, tenant_id: int, tool: str, phone: str) -> CheckinResult:
        holder = await self.get_holder(tenant_id, tool)
        if holder is None:
            return CheckinResult(found=False)
        if holder.phone != phone:
            return CheckinResult(found=False, other_holder=CheckoutRecord.model_validate(holder))

        returned = await self._archive(CheckoutRecord.model_validate(holder))
        if returned is None:
            return CheckinResult(found=False)
        return CheckinResult(found=True, returned=returned)

    async def checkin_all(self, tenant_id: int, phone: str) -> BulkCheckinResult:
        returned = []
        held = [CheckoutRecord.model_validate(row) for row in await self.list_by_phone(tenant_id, phone)]
        for snapshot in held:
            record = await self._archive(snapshot)
            if record is not None:
                returned.append(record)
        return BulkCheckinResult(returned=returned)

    async def force_checkin(self, tenant_id: int, checkout_id: int) -> CheckinResult:
        """Admin return by checkout id, whoever holds the tool."""
        result = await self.db.execute(
            select(ActiveCheckout).filter(
                ActiveCheckout.tenant_id == tenant_id, ActiveCheckout.id == checkout_id
            )
        )
        row = result.scalars().first()
        if row is None:
            return CheckinResult(found=False)
        returned = await self._archive(CheckoutRecord.model_validate(row))
        return CheckinResult(found=returned is not None, returned=returned)
