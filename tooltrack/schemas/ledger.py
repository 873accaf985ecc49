from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import List, Optional
import enum

class CheckoutRecord(BaseModel):
    id: Optional[int] = None
    tenant_id: int
    tool: str
    person: str
    phone: str
    group: Optional[str] = None
    checked_out_at: datetime

    model_config = ConfigDict(from_attributes=True)

class HistoryRecord(CheckoutRecord):
    returned_at: datetime

class CheckoutStatus(str, enum.Enum):
    CHECKED_OUT = "checked_out"
    ALREADY_YOURS = "already_yours"
    HELD_BY_OTHER = "held_by_other"

class CheckoutResult(BaseModel):
    status: CheckoutStatus
    record: CheckoutRecord

    @property
    def ok(self) -> bool:
        return self.status == CheckoutStatus.CHECKED_OUT

class CheckinResult(BaseModel):
    found: bool
    returned: Optional[HistoryRecord] = None
    # Set when the tool is out, but not to the requester
    other_holder: Optional[CheckoutRecord] = None

class BulkCheckinResult(BaseModel):
    returned: List[HistoryRecord] = []
