from pydantic import BaseModel
from typing import List, Optional
import enum

class PendingKind(str, enum.Enum):
    TOOL = "tool"
    GROUP = "group"

class PendingChoice(BaseModel):
    """Open question left by the last assistant message.

    ``confirm`` marks a single "Do you mean X?" question; otherwise the
    candidates were sent as a numbered list, in order.
    """

    kind: PendingKind = PendingKind.TOOL
    intent: Optional[str] = None
    candidates: List[str] = []
    confirm: bool = False

    @property
    def is_single(self) -> bool:
        return len(self.candidates) == 1

    def pick(self, ordinal: int) -> Optional[str]:
        if 1 <= ordinal <= len(self.candidates):
            return self.candidates[ordinal - 1]
        return None
