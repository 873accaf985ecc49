from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime
from typing import List, Optional
import enum

class Intent(str, enum.Enum):
    REGISTER = "register"
    SELECT_GROUP = "select_group"
    CHECKOUT = "checkout"
    CHECKIN = "checkin"
    STATUS = "status"
    AVAILABILITY = "availability"
    CONFIRM = "confirm"
    DENY = "deny"
    GREETING = "greeting"
    THANKS = "thanks"
    UNKNOWN = "unknown"

class ParsedIntent(BaseModel):
    """Oracle guess, normalized. Every field is re-validated before use."""

    model_config = ConfigDict(populate_by_name=True)

    intent: Intent = Intent.UNKNOWN
    tool: Optional[str] = None
    person: Optional[str] = Field(default=None, validation_alias="name")
    group: Optional[str] = None

    @field_validator("intent", mode="before")
    @classmethod
    def coerce_intent(cls, value):
        if isinstance(value, Intent):
            return value
        value = str(value or "").strip().lower()
        if value == "register_name":
            return Intent.REGISTER
        try:
            return Intent(value)
        except ValueError:
            return Intent.UNKNOWN

    @field_validator("tool", "person", "group", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        if value is None:
            return None
        value = str(value).strip()
        if not value or value.lower() in ("null", "none"):
            return None
        return value

class HistoryMessage(BaseModel):
    role: str
    content: str

class CatalogEntry(BaseModel):
    name: str
    aliases: List[str] = []

class HeldTool(BaseModel):
    tool: str
    person: str
    checked_out_at: Optional[datetime] = None

class OracleRequest(BaseModel):
    message: str
    is_registered: bool
    group_pending: bool = False
    history: List[HistoryMessage] = []
    catalog: List[CatalogEntry] = []
    active_checkouts: List[HeldTool] = []
    my_tools: List[str] = []
    group_names: List[str] = []
