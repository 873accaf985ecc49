"""Recovering the open question of a conversation without a live session.

The last assistant message carries the question it asked as a stored
``PendingChoice``. Messages without one (older rows) fall back to reading
the reply text itself: numbered ``"<n>) <label>"`` lines, or a single
"Do you mean <label>?" phrasing.
"""
import logging
import re
from typing import List, Optional
from pydantic import ValidationError
from tooltrack.schemas.pending import PendingChoice, PendingKind

logger = logging.getLogger(__name__)

NUMBERED_LINE = re.compile(r"^\s*(\d+)\)\s*(.+?)\s*$", re.MULTILINE)
DO_YOU_MEAN = re.compile(r"Do you mean (?:the )?(.+?)\?", re.IGNORECASE)


def parse_numbered_choices(text: str) -> List[str]:
    choices = {}
    for number, label in NUMBERED_LINE.findall(text or ""):
        choices.setdefault(int(number), label)
    return [choices[n] for n in sorted(choices)]


def parse_do_you_mean(text: str) -> Optional[str]:
    match = DO_YOU_MEAN.search(text or "")
    return match.group(1).strip() if match else None


def from_text(text: str) -> Optional[PendingChoice]:
    choices = parse_numbered_choices(text)
    if choices:
        kind = PendingKind.GROUP if "group" in (text or "").lower() else PendingKind.TOOL
        return PendingChoice(kind=kind, candidates=choices)

    label = parse_do_you_mean(text)
    if label:
        return PendingChoice(kind=PendingKind.TOOL, candidates=[label], confirm=True)
    return None


def recover_pending(message) -> Optional[PendingChoice]:
    """Open question of the last assistant ChatMessage, if it asked one."""
    if message is None:
        return None
    if message.pending:
        try:
            return PendingChoice.model_validate(message.pending)
        except ValidationError:
            logger.warning("Ignoring malformed pending state on message %s", message.id)
    return from_text(message.content)
