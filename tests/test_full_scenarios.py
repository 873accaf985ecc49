import pytest
from httpx import AsyncClient
from sqlalchemy import func
from sqlalchemy.future import select
from tooltrack.models.checkout import ActiveCheckout, HistoryEntry
from tooltrack.models.user import User
from tooltrack.schemas.intent import Intent
from tooltrack.schemas.tool import ToolCreate
from conftest import CREW_NUMBER, SHARED_NUMBER, create_member, create_tenant, send

MIKE = "+15550000001"
JANE = "+15550000002"
BOB = "+15550000003"

async def active_count(db) -> int:
    result = await db.execute(select(func.count(ActiveCheckout.id)))
    return result.scalar_one()

async def history_count(db) -> int:
    result = await db.execute(select(func.count(HistoryEntry.id)))
    return result.scalar_one()

async def fetch_user(db, tenant, phone):
    # Rows written by the app's own sessions; refresh whatever this session already holds
    query = select(User).filter(User.tenant_id == tenant.id, User.phone == phone)
    result = await db.execute(query.execution_options(populate_existing=True))
    return result.scalars().first()

# ==========================================
# Scenario A: ambiguous request lists choices
# ==========================================

@pytest.mark.asyncio
async def test_ambiguous_drill_lists_both(client: AsyncClient, db_session):
    tenant = await create_tenant(db_session, routing_address=CREW_NUMBER, tools=["Dewalt Drill", "Makita Drill"])
    await create_member(db_session, tenant, MIKE, "Mike")

    text = await send(client, MIKE, "need a drill")
    assert "1) Dewalt Drill" in text
    assert "2) Makita Drill" in text
    assert await active_count(db_session) == 0

@pytest.mark.asyncio
async def test_number_picks_from_list(client: AsyncClient, db_session):
    tenant = await create_tenant(db_session, routing_address=CREW_NUMBER, tools=["Dewalt Drill", "Makita Drill"])
    await create_member(db_session, tenant, MIKE, "Mike")

    await send(client, MIKE, "need a drill")
    text = await send(client, MIKE, "2")
    assert "Makita Drill checked out to you" in text

    result = await db_session.execute(select(ActiveCheckout))
    rows = result.scalars().all()
    assert [(r.tool, r.person, r.phone) for r in rows] == [("Makita Drill", "Mike", MIKE)]

@pytest.mark.asyncio
async def test_number_out_of_range(client: AsyncClient, db_session):
    tenant = await create_tenant(db_session, routing_address=CREW_NUMBER, tools=["Dewalt Drill", "Makita Drill"])
    await create_member(db_session, tenant, MIKE, "Mike")

    await send(client, MIKE, "need a drill")
    text = await send(client, MIKE, "5")
    assert "Pick a number between 1 and 2" in text
    assert await active_count(db_session) == 0

    # The list is still open
    text = await send(client, MIKE, "1")
    assert "Dewalt Drill checked out to you" in text

@pytest.mark.asyncio
async def test_yes_with_several_choices_asks_for_number(client: AsyncClient, db_session):
    tenant = await create_tenant(db_session, routing_address=CREW_NUMBER, tools=["Dewalt Drill", "Makita Drill"])
    await create_member(db_session, tenant, MIKE, "Mike")

    await send(client, MIKE, "need a drill")
    text = await send(client, MIKE, "yes")
    assert "Reply with the number" in text
    assert await active_count(db_session) == 0

# ==========================================
# Confirmation of a single fuzzy match
# ==========================================

@pytest.mark.asyncio
async def test_do_you_mean_then_yes(client: AsyncClient, db_session):
    tenant = await create_tenant(db_session, routing_address=CREW_NUMBER, tools=["Dewalt 1223 Cordless Drill", "Ladder"])
    await create_member(db_session, tenant, MIKE, "Mike")

    text = await send(client, MIKE, "grabbing the dewalt drill")
    assert "Do you mean the Dewalt 1223 Cordless Drill?" in text
    assert await active_count(db_session) == 0

    text = await send(client, MIKE, "yes")
    assert "Dewalt 1223 Cordless Drill checked out to you" in text
    assert await active_count(db_session) == 1

@pytest.mark.asyncio
async def test_do_you_mean_then_no(client: AsyncClient, db_session):
    tenant = await create_tenant(db_session, routing_address=CREW_NUMBER, tools=["Dewalt 1223 Cordless Drill"])
    await create_member(db_session, tenant, MIKE, "Mike")

    await send(client, MIKE, "grabbing the dewalt drill")
    text = await send(client, MIKE, "no")
    assert "No problem" in text
    assert await active_count(db_session) == 0

@pytest.mark.asyncio
async def test_yes_resolved_from_text_without_stored_state(client: AsyncClient, db_session):
    tenant = await create_tenant(db_session, routing_address=CREW_NUMBER, tools=["Circular Saw"])
    await create_member(db_session, tenant, MIKE, "Mike")

    await send(client, MIKE, "grabbing the saw")
    # Older rows carry no pending state; the question is read back from the text
    from tooltrack.models.message import ChatMessage
    result = await db_session.execute(select(ChatMessage).filter(ChatMessage.pending.isnot(None)))
    for message in result.scalars().all():
        message.pending = None
    await db_session.commit()

    text = await send(client, MIKE, "yeah")
    assert "Circular Saw checked out to you" in text

@pytest.mark.asyncio
async def test_alias_exact_match_checks_out_directly(client: AsyncClient, db_session):
    tenant = await create_tenant(
        db_session,
        routing_address=CREW_NUMBER,
        tools=[ToolCreate(name="Hilti TE 30 Rotary Hammer", aliases=["hammer drill"])],
    )
    await create_member(db_session, tenant, MIKE, "Mike")

    text = await send(client, MIKE, "grabbing the hammer drill")
    assert "Hilti TE 30 Rotary Hammer checked out to you" in text

@pytest.mark.asyncio
async def test_tool_not_in_catalog(client: AsyncClient, db_session):
    tenant = await create_tenant(db_session, routing_address=CREW_NUMBER, tools=["Ladder"])
    await create_member(db_session, tenant, MIKE, "Mike")

    text = await send(client, MIKE, "need a jackhammer")
    assert "jackhammer isn't in the catalog" in text
    assert await active_count(db_session) == 0

# ==========================================
# Scenario B: conflict names the holder
# ==========================================

@pytest.mark.asyncio
async def test_ladder_held_by_someone_else(client: AsyncClient, db_session):
    tenant = await create_tenant(db_session, routing_address=CREW_NUMBER, tools=["Ladder"])
    await create_member(db_session, tenant, MIKE, "Mike")
    await create_member(db_session, tenant, JANE, "Jane")

    text = await send(client, MIKE, "grabbing the ladder")
    assert "Ladder checked out to you" in text

    text = await send(client, JANE, "grabbing the ladder")
    assert "Ladder is checked out to Mike" in text
    assert await active_count(db_session) == 1

    text = await send(client, MIKE, "grabbing the ladder")
    assert "You already have the Ladder checked out" in text
    assert await active_count(db_session) == 1

# ==========================================
# Check-in
# ==========================================

@pytest.mark.asyncio
async def test_checkout_then_return(client: AsyncClient, db_session):
    tenant = await create_tenant(db_session, routing_address=CREW_NUMBER, tools=["Dewalt Drill", "Ladder"])
    await create_member(db_session, tenant, MIKE, "Mike")

    await send(client, MIKE, "grabbing the ladder")
    text = await send(client, MIKE, "returning the ladder")
    assert "Ladder returned" in text
    assert await active_count(db_session) == 0
    assert await history_count(db_session) == 1

@pytest.mark.asyncio
async def test_return_matches_only_own_tools(client: AsyncClient, db_session):
    tenant = await create_tenant(db_session, routing_address=CREW_NUMBER, tools=["Dewalt Drill", "Makita Drill"])
    await create_member(db_session, tenant, MIKE, "Mike")
    await create_member(db_session, tenant, JANE, "Jane")

    await send(client, MIKE, "grabbing the dewalt drill")
    await send(client, JANE, "need a drill")
    await send(client, JANE, "2")

    # Two drills are out, but Mike holds only one: no list, just a confirmation
    text = await send(client, MIKE, "returning the drill")
    assert "Do you mean the Dewalt Drill?" in text
    assert await active_count(db_session) == 2

    text = await send(client, MIKE, "yes")
    assert "Dewalt Drill returned" in text
    assert await active_count(db_session) == 1

@pytest.mark.asyncio
async def test_fuzzy_return_asks_before_returning(client: AsyncClient, db_session):
    tenant = await create_tenant(db_session, routing_address=CREW_NUMBER, tools=["Dewalt 1223 Cordless Drill"])
    await create_member(db_session, tenant, MIKE, "Mike")

    await send(client, MIKE, "grabbing the dewalt 1223 cordless drill")
    text = await send(client, MIKE, "returning the cordless thing")
    assert "Do you mean the Dewalt 1223 Cordless Drill?" in text
    assert await history_count(db_session) == 0

    text = await send(client, MIKE, "no")
    assert await active_count(db_session) == 1
    assert await history_count(db_session) == 0

    await send(client, MIKE, "returning the cordless thing")
    text = await send(client, MIKE, "yes")
    assert "Dewalt 1223 Cordless Drill returned" in text
    assert await active_count(db_session) == 0
    assert await history_count(db_session) == 1

@pytest.mark.asyncio
async def test_return_names_every_other_holder(client: AsyncClient, db_session):
    tenant = await create_tenant(db_session, routing_address=CREW_NUMBER, tools=["Dewalt Drill", "Makita Drill"])
    await create_member(db_session, tenant, MIKE, "Mike")
    await create_member(db_session, tenant, JANE, "Jane")
    await create_member(db_session, tenant, BOB, "Bob")

    await send(client, MIKE, "grabbing the dewalt drill")
    await send(client, JANE, "grabbing the makita drill")

    text = await send(client, BOB, "returning the drill")
    assert "Dewalt Drill" in text and "Mike" in text
    assert "Makita Drill" in text and "Jane" in text
    assert "not you" in text
    assert "No one has" not in text
    assert await active_count(db_session) == 2

@pytest.mark.asyncio
async def test_return_someone_elses_tool(client: AsyncClient, db_session):
    tenant = await create_tenant(db_session, routing_address=CREW_NUMBER, tools=["Ladder", "Shop Vac"])
    await create_member(db_session, tenant, MIKE, "Mike")
    await create_member(db_session, tenant, JANE, "Jane")

    await send(client, MIKE, "grabbing the ladder")

    text = await send(client, JANE, "returning the ladder")
    assert "Ladder is checked out to Mike, not you" in text

    text = await send(client, JANE, "returning the shop vac")
    assert "No one has the Shop Vac checked out" in text
    assert await active_count(db_session) == 1
    assert await history_count(db_session) == 0

@pytest.mark.asyncio
async def test_return_everything(client: AsyncClient, db_session, oracle):
    tenant = await create_tenant(db_session, routing_address=CREW_NUMBER, tools=["Ladder", "Shop Vac", "Dewalt Drill"])
    await create_member(db_session, tenant, MIKE, "Mike")

    await send(client, MIKE, "grabbing the ladder")
    await send(client, MIKE, "grabbing the shop vac")
    oracle.push(Intent.CHECKIN, tool="all")
    text = await send(client, MIKE, "dropping everything off")
    assert "Returned: " in text
    assert "Ladder" in text and "Shop Vac" in text
    assert await active_count(db_session) == 0
    assert await history_count(db_session) == 2

@pytest.mark.asyncio
async def test_return_without_tool_lists_own(client: AsyncClient, db_session, oracle):
    tenant = await create_tenant(db_session, routing_address=CREW_NUMBER, tools=["Ladder", "Shop Vac"])
    await create_member(db_session, tenant, MIKE, "Mike")

    await send(client, MIKE, "grabbing the ladder")
    await send(client, MIKE, "grabbing the shop vac")
    oracle.push(Intent.CHECKIN)
    text = await send(client, MIKE, "bringing one back")
    assert "1) Ladder" in text and "2) Shop Vac" in text

    text = await send(client, MIKE, "2")
    assert "Shop Vac returned" in text
    assert await active_count(db_session) == 1

# ==========================================
# Status and availability
# ==========================================

@pytest.mark.asyncio
async def test_who_has_and_whats_available(client: AsyncClient, db_session):
    tenant = await create_tenant(db_session, routing_address=CREW_NUMBER, tools=["Ladder", "Shop Vac"])
    await create_member(db_session, tenant, MIKE, "Mike")
    await create_member(db_session, tenant, JANE, "Jane")

    await send(client, MIKE, "grabbing the ladder")

    text = await send(client, JANE, "who has the ladder?")
    assert "Mike has the Ladder (since" in text

    text = await send(client, JANE, "who has the shop vac")
    assert "Shop Vac is available" in text

    text = await send(client, JANE, "what's available?")
    assert "Shop Vac" in text
    assert "Ladder" not in text

@pytest.mark.asyncio
async def test_status_lists_all_checkouts(client: AsyncClient, db_session, oracle):
    tenant = await create_tenant(db_session, routing_address=CREW_NUMBER, tools=["Ladder"])
    await create_member(db_session, tenant, MIKE, "Mike")

    oracle.push(Intent.STATUS)
    text = await send(client, MIKE, "what's out")
    assert "Nothing is checked out right now" in text

    await send(client, MIKE, "grabbing the ladder")
    oracle.push(Intent.STATUS)
    text = await send(client, MIKE, "what's out")
    assert "- Ladder: Mike" in text

    oracle.push(Intent.STATUS, person="mike")
    text = await send(client, MIKE, "what does mike have")
    assert "Mike has the Ladder" in text

    oracle.push(Intent.AVAILABILITY)
    text = await send(client, MIKE, "anything free")
    assert "Everything is checked out right now" in text

# ==========================================
# Scenario C: join codes on the shared number
# ==========================================

@pytest.mark.asyncio
async def test_wrong_join_code_twice(client: AsyncClient, db_session):
    await create_tenant(db_session, join_code="acme42")
    phone = "+15550000003"

    first = await send(client, phone, "BANANA", to=SHARED_NUMBER)
    second = await send(client, phone, "BANANA", to=SHARED_NUMBER)
    assert "Welcome" in first
    assert "Didn't recognize that code" in second
    assert first != second

    result = await db_session.execute(select(User).filter(User.phone == phone))
    assert result.scalars().all() == []

@pytest.mark.asyncio
async def test_join_code_then_name(client: AsyncClient, db_session):
    tenant = await create_tenant(db_session, join_code="ACME42", name="Acme Builders", tools=["Ladder"])
    phone = "+15550000004"

    text = await send(client, phone, "acme42", to=SHARED_NUMBER)
    assert "Welcome to Acme Builders! What's your name?" in text
    user = await fetch_user(db_session, tenant, phone)
    assert user is not None and user.name == ""

    text = await send(client, phone, "Carlos Ruiz", to=SHARED_NUMBER)
    assert "Got it, Carlos Ruiz." in text
    user = await fetch_user(db_session, tenant, phone)
    assert user.name == "Carlos Ruiz"

    text = await send(client, phone, "grabbing the ladder", to=SHARED_NUMBER)
    assert "Ladder checked out to you" in text

@pytest.mark.asyncio
async def test_disabled_tenant_is_frozen(client: AsyncClient, db_session):
    from tooltrack.models.tenant import TenantStatus
    tenant = await create_tenant(db_session, routing_address=CREW_NUMBER, status=TenantStatus.DISABLED, tools=["Ladder"])
    await create_member(db_session, tenant, MIKE, "Mike")

    text = await send(client, MIKE, "grabbing the ladder")
    assert "paused" in text
    assert await active_count(db_session) == 0

# ==========================================
# Scenario D: group pick by number
# ==========================================

@pytest.mark.asyncio
async def test_group_pick_by_number(client: AsyncClient, db_session):
    tenant = await create_tenant(
        db_session, routing_address=CREW_NUMBER, groups_enabled=True, group_names=["Electrical", "Plumbing"]
    )
    phone = "+15550000005"

    text = await send(client, phone, "hey")
    assert "What's your name?" in text

    text = await send(client, phone, "Dana")
    assert "1) Electrical" in text and "2) Plumbing" in text

    text = await send(client, phone, "2")
    assert "You're in Plumbing" in text
    user = await fetch_user(db_session, tenant, phone)
    assert user.group == "Plumbing"

@pytest.mark.asyncio
async def test_group_pick_by_name_and_reprompt(client: AsyncClient, db_session):
    tenant = await create_tenant(
        db_session, routing_address=CREW_NUMBER, groups_enabled=True, group_names=["Electrical", "Plumbing"]
    )
    await create_member(db_session, tenant, MIKE, "Mike")

    text = await send(client, MIKE, "framing")
    assert "Pick one of these groups" in text

    text = await send(client, MIKE, "electrical")
    assert "You're in Electrical" in text
    user = await fetch_user(db_session, tenant, MIKE)
    assert user.group == "Electrical"

@pytest.mark.asyncio
async def test_register_intent_on_first_message(client: AsyncClient, db_session, oracle):
    tenant = await create_tenant(db_session, routing_address=CREW_NUMBER)
    phone = "+15550000006"

    oracle.push(Intent.REGISTER, person="Mike Rodriguez")
    text = await send(client, phone, "hi this is mike rodriguez")
    assert "Got it, Mike Rodriguez." in text
    user = await fetch_user(db_session, tenant, phone)
    assert user.name == "Mike Rodriguez"
