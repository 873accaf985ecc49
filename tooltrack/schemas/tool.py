from pydantic import BaseModel, ConfigDict, field_validator
from typing import List, Optional

class ToolCreate(BaseModel):
    name: str
    aliases: List[str] = []
    group: Optional[str] = None

    @field_validator("name")
    @classmethod
    def clean_name(cls, value: str) -> str:
        value = " ".join(value.split())
        if not value:
            raise ValueError("Tool name is required")
        return value

    @field_validator("aliases")
    @classmethod
    def clean_aliases(cls, value: List[str]) -> List[str]:
        return [" ".join(a.split()) for a in value if a and a.strip()]

class ToolResponse(ToolCreate):
    id: int
    tenant_id: int

    model_config = ConfigDict(from_attributes=True)
