import enum
from typing import List, Optional
from tooltrack.utils.validators import parse_ordinal


class OnboardingPhase(str, enum.Enum):
    UNKNOWN_TENANT = "unknown_tenant"
    AWAITING_JOIN_CODE = "awaiting_join_code"
    AWAITING_NAME = "awaiting_name"
    AWAITING_GROUP = "awaiting_group"
    ACTIVE = "active"


def derive_phase(tenant, user) -> OnboardingPhase:
    """Registration phase of a phone, recomputed from stored data on every message.

    ``tenant`` is the resolved tenant or None, ``user`` the phone's User row
    under that tenant or None.
    """
    if tenant is None:
        return OnboardingPhase.UNKNOWN_TENANT
    if user is None:
        return OnboardingPhase.AWAITING_JOIN_CODE
    if not user.name:
        return OnboardingPhase.AWAITING_NAME
    if tenant.requires_group and not user.group:
        return OnboardingPhase.AWAITING_GROUP
    return OnboardingPhase.ACTIVE


def match_group(text: Optional[str], group_names: List[str]) -> Optional[str]:
    """Resolve a group pick by name (case-insensitive) or by its number in the list."""
    if not text:
        return None
    wanted = " ".join(text.split()).lower()
    for name in group_names:
        if name.lower() == wanted:
            return name

    ordinal = parse_ordinal(text)
    if ordinal is not None and ordinal <= len(group_names):
        return group_names[ordinal - 1]
    return None


def numbered(options: List[str]) -> str:
    return "\n".join(f"{i}) {option}" for i, option in enumerate(options, start=1))


def group_prompt(group_names: List[str]) -> str:
    return "Which group are you in? Reply with the number:\n" + numbered(group_names)
