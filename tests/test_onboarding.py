from types import SimpleNamespace
from tooltrack.models.tenant import Tenant, TenantStatus
from tooltrack.services.onboarding import OnboardingPhase, derive_phase, group_prompt, match_group
from tooltrack.utils.validators import normalize_join_code, normalize_phone, parse_ordinal

GROUPS = ["Electrical", "Plumbing"]

def tenant(groups_enabled=False, group_names=None):
    return Tenant(
        slug="acme",
        name="Acme",
        status=TenantStatus.ACTIVE,
        groups_enabled=groups_enabled,
        group_names=group_names or [],
    )

def test_phases():
    assert derive_phase(None, None) == OnboardingPhase.UNKNOWN_TENANT
    assert derive_phase(tenant(), None) == OnboardingPhase.AWAITING_JOIN_CODE
    assert derive_phase(tenant(), SimpleNamespace(name="", group=None)) == OnboardingPhase.AWAITING_NAME
    assert derive_phase(tenant(), SimpleNamespace(name="Mike", group=None)) == OnboardingPhase.ACTIVE

def test_group_phase_only_when_groups_are_on():
    mike = SimpleNamespace(name="Mike", group=None)
    assert derive_phase(tenant(True, GROUPS), mike) == OnboardingPhase.AWAITING_GROUP
    # Enabled without any names configured
    assert derive_phase(tenant(True, []), mike) == OnboardingPhase.ACTIVE
    mike.group = "Plumbing"
    assert derive_phase(tenant(True, GROUPS), mike) == OnboardingPhase.ACTIVE

def test_match_group_by_name_or_number():
    assert match_group("plumbing", GROUPS) == "Plumbing"
    assert match_group("  ELECTRICAL ", GROUPS) == "Electrical"
    assert match_group("2", GROUPS) == "Plumbing"
    assert match_group("#1", GROUPS) == "Electrical"

def test_match_group_rejects_the_rest():
    assert match_group("3", GROUPS) is None
    assert match_group("0", GROUPS) is None
    assert match_group("framing", GROUPS) is None
    assert match_group(None, GROUPS) is None

def test_group_prompt_is_numbered():
    assert group_prompt(GROUPS).endswith("1) Electrical\n2) Plumbing")

def test_ordinals():
    assert parse_ordinal("2") == 2
    assert parse_ordinal(" 2. ") == 2
    assert parse_ordinal("2)") == 2
    assert parse_ordinal("0") is None
    assert parse_ordinal("2 drills") is None

def test_normalizers():
    assert normalize_phone("whatsapp:+1 (555) 000-0001") == "+15550000001"
    assert normalize_phone("15550000001") == "+15550000001"
    assert normalize_join_code(" acme 42 ") == "ACME42"
