from pydantic import BaseModel, ConfigDict, field_validator
from datetime import datetime
from typing import List, Optional
from tooltrack.models.tenant import TenantStatus
from tooltrack.utils.validators import normalize_join_code, normalize_phone

class TenantCreate(BaseModel):
    slug: str
    name: str
    join_code: Optional[str] = None
    routing_address: Optional[str] = None
    status: TenantStatus = TenantStatus.ACTIVE
    groups_enabled: bool = False
    group_names: List[str] = []

    @field_validator("slug")
    @classmethod
    def clean_slug(cls, value: str) -> str:
        value = value.strip().lower()
        if not value:
            raise ValueError("slug is required")
        return value

    @field_validator("join_code")
    @classmethod
    def clean_join_code(cls, value: Optional[str]) -> Optional[str]:
        return normalize_join_code(value) or None if value is not None else None

    @field_validator("routing_address")
    @classmethod
    def clean_routing_address(cls, value: Optional[str]) -> Optional[str]:
        return normalize_phone(value) or None if value is not None else None

    @field_validator("group_names")
    @classmethod
    def clean_group_names(cls, value: List[str]) -> List[str]:
        return [g.strip() for g in value if g and g.strip()]

class TenantResponse(BaseModel):
    id: int
    slug: str
    name: str
    status: TenantStatus
    groups_enabled: bool
    group_names: List[str]
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
