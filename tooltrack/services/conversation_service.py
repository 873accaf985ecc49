import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from twilio.twiml.messaging_response import MessagingResponse
from tooltrack.config import get_settings
from tooltrack.models.checkout import ActiveCheckout
from tooltrack.models.message import ChatMessage, MessageRole
from tooltrack.models.tenant import Tenant
from tooltrack.models.tool import Tool
from tooltrack.models.user import User
from tooltrack.schemas.intent import (
    CatalogEntry,
    HeldTool,
    HistoryMessage,
    Intent,
    OracleRequest,
    ParsedIntent,
)
from tooltrack.schemas.ledger import CheckoutStatus
from tooltrack.schemas.pending import PendingChoice, PendingKind
from tooltrack.services.catalog_service import CatalogService
from tooltrack.services.disambiguation import recover_pending
from tooltrack.services.ledger_service import LedgerService
from tooltrack.services.message_service import MessageService
from tooltrack.services.onboarding import (
    OnboardingPhase,
    derive_phase,
    group_prompt,
    match_group,
    numbered,
)
from tooltrack.services.tenant_service import TenantResolution, TenantService
from tooltrack.services.tool_matcher import match, match_held, match_tools, normalize
from tooltrack.services.user_service import UserService
from tooltrack.utils.formatting import first_name, since
from tooltrack.utils.validators import normalize_name, normalize_phone, parse_ordinal, tool_key

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Something went wrong. Try again in a moment."
UNREADABLE = "Couldn't read your message. Try again?"
ALL_SET = "You're all set. Just text me when you grab or return a tool."
HELP = (
    "Text me when you grab or return a tool, like \"grabbing the ladder\" or "
    "\"returning the drill\". You can also ask \"who has the saw?\" or \"what's available?\""
)

_RETURN_ALL = re.compile(r"\b(everything|all (my )?(tools|stuff|gear)|all of (it|them|my tools))\b")
_ALL_TOOLS = {"all", "everything", "all tools", "all my tools"}


@dataclass
class Reply:
    text: str
    pending: Optional[PendingChoice] = None


@dataclass
class ReadContext:
    catalog: List[Tool] = field(default_factory=list)
    active: List[ActiveCheckout] = field(default_factory=list)
    history: List[ChatMessage] = field(default_factory=list)

    def held_by(self, phone: str) -> List[ActiveCheckout]:
        held = [c for c in self.active if c.phone == phone]
        return sorted(held, key=lambda c: (c.checked_out_at, c.id))

    def holder_of(self, tool_name: str) -> Optional[ActiveCheckout]:
        key = tool_key(tool_name)
        return next((c for c in self.active if c.tool_key == key), None)

    @property
    def last_assistant(self) -> Optional[ChatMessage]:
        for message in reversed(self.history):
            if message.role == MessageRole.ASSISTANT:
                return message
        return None


class ConversationService:
    def __init__(self, db: AsyncSession, oracle, session_factory=None):
        self.db = db
        self.oracle = oracle
        self.session_factory = session_factory
        self.settings = get_settings()
        self.tenant_service = TenantService(db)
        self.user_service = UserService(db)
        self.catalog_service = CatalogService(db)
        self.ledger_service = LedgerService(db)
        self.message_service = MessageService(db)

    async def handle_message(self, from_number: str, to_number: str, body: str) -> str:
        response = MessagingResponse()
        phone = normalize_phone(from_number)
        body = (body or "").strip()

        if not phone or not body:
            response.message(UNREADABLE)
            return str(response)

        try:
            text = await self.reply_to(phone, to_number, body)
        except Exception:
            logger.exception("Error handling message from %s", phone)
            text = GENERIC_ERROR

        response.message(text)
        return str(response)

    async def reply_to(self, phone: str, to_number: str, body: str) -> str:
        resolution = await self.tenant_service.resolve(to_number, phone)
        if resolution.tenant is None:
            return await self._join_flow(phone, body, resolution)
        tenant = resolution.tenant

        user, created = await self.user_service.get_or_create_user(tenant.id, phone)
        phase = derive_phase(tenant, user)
        ctx = await self._load_context(tenant.id, phone)

        await self.message_service.append(tenant.id, phone, MessageRole.USER, body)

        parsed = await self.oracle.parse(self._oracle_request(body, tenant, user, phase, ctx))
        logger.info("Tenant %s, %s (%s): %s", tenant.id, phone, phase.value, parsed.intent.value)

        if phase == OnboardingPhase.AWAITING_NAME:
            reply = await self._handle_name(tenant, user, body, parsed, created)
        elif phase == OnboardingPhase.AWAITING_GROUP:
            reply = await self._handle_group_pick(tenant, user, body, parsed, ctx)
        else:
            reply = await self._handle_active(tenant, user, body, parsed, ctx)

        await self.message_service.append(tenant.id, phone, MessageRole.ASSISTANT, reply.text, reply.pending)
        return reply.text

    # --- READ CONTEXT ---

    async def _read(self, fn):
        async with self.session_factory() as session:
            return await fn(session)

    async def _load_context(self, tenant_id: int, phone: str) -> ReadContext:
        limit = self.settings.HISTORY_LIMIT
        if self.session_factory is None:
            return ReadContext(
                catalog=await self.catalog_service.list_tools(tenant_id),
                active=await self.ledger_service.list_active(tenant_id),
                history=await self.message_service.recent(tenant_id, phone, limit),
            )

        catalog, active, history = await asyncio.gather(
            self._read(lambda db: CatalogService(db).list_tools(tenant_id)),
            self._read(lambda db: LedgerService(db).list_active(tenant_id)),
            self._read(lambda db: MessageService(db).recent(tenant_id, phone, limit)),
        )
        return ReadContext(catalog=catalog, active=active, history=history)

    def _oracle_request(self, body: str, tenant: Tenant, user: User, phase: OnboardingPhase, ctx: ReadContext) -> OracleRequest:
        request = OracleRequest(
            message=body,
            is_registered=bool(user.name),
            group_pending=phase == OnboardingPhase.AWAITING_GROUP,
            history=[HistoryMessage(role=m.role.value, content=m.content) for m in ctx.history],
            group_names=list(tenant.group_names or []),
        )
        if phase == OnboardingPhase.ACTIVE:
            request.catalog = [CatalogEntry(name=t.name, aliases=t.aliases or []) for t in ctx.catalog]
            request.active_checkouts = [
                HeldTool(tool=c.tool, person=c.person, checked_out_at=c.checked_out_at) for c in ctx.active
            ]
            request.my_tools = [c.tool for c in ctx.held_by(user.phone)]
        return request

    # --- ONBOARDING ---

    async def _join_flow(self, phone: str, body: str, resolution: TenantResolution) -> str:
        prior = await self.message_service.count(None, phone)
        tenant = await self.tenant_service.get_by_join_code(body)
        await self.message_service.append(None, phone, MessageRole.USER, body)

        if tenant is not None:
            user = await self.user_service.get_user(tenant.id, phone)
            if user is None:
                await self.user_service.create_pending_user(tenant.id, phone)
                reply = f"Welcome to {tenant.name}! What's your name?"
            else:
                reply = f"Welcome back to {tenant.name}."
            logger.info("%s joined tenant %s with its join code", phone, tenant.id)
            await self.message_service.append(tenant.id, phone, MessageRole.ASSISTANT, reply)
            return reply

        if resolution.disabled:
            reply = "This crew's account is paused. Check with your manager."
        elif prior == 0:
            reply = "Welcome! Text the join code from your manager to get started."
        else:
            reply = "Didn't recognize that code. Check it with your manager and try again."
        await self.message_service.append(None, phone, MessageRole.ASSISTANT, reply)
        return reply

    async def _handle_name(self, tenant: Tenant, user: User, body: str, parsed: ParsedIntent, created: bool) -> Reply:
        if parsed.intent == Intent.REGISTER and parsed.person:
            name = parsed.person
        elif created or parsed.intent in (Intent.GREETING, Intent.THANKS):
            return Reply(f"Hey, looks like you're new to {tenant.name}. What's your name?")
        else:
            name = body

        if not normalize_name(name):
            return Reply("What's your name?")

        user = await self.user_service.register_name(user, name)
        if tenant.requires_group:
            return Reply(
                f"Got it, {user.name}. " + group_prompt(tenant.group_names),
                pending=PendingChoice(kind=PendingKind.GROUP, candidates=list(tenant.group_names)),
            )
        return Reply(f"Got it, {user.name}. {ALL_SET}")

    def _pick_group(self, tenant: Tenant, body: str, parsed: ParsedIntent, pending: Optional[PendingChoice]) -> Optional[str]:
        names = list(tenant.group_names or [])
        ordinal = parse_ordinal(body)
        if ordinal is not None and pending is not None and pending.kind == PendingKind.GROUP:
            # Number refers to the list as it was sent
            return match_group(pending.pick(ordinal), names)

        group = match_group(body, names)
        if group is None and parsed.intent == Intent.SELECT_GROUP:
            group = match_group(parsed.group, names)
        return group

    async def _handle_group_pick(self, tenant: Tenant, user: User, body: str, parsed: ParsedIntent, ctx: ReadContext) -> Reply:
        group = self._pick_group(tenant, body, parsed, recover_pending(ctx.last_assistant))
        if group is None:
            return Reply(
                "Pick one of these groups:\n" + numbered(tenant.group_names),
                pending=PendingChoice(kind=PendingKind.GROUP, candidates=list(tenant.group_names)),
            )

        await self.user_service.set_group(user, group)
        return Reply(f"You're in {group}. {ALL_SET}")

    # --- ACTIVE ---

    async def _handle_active(self, tenant: Tenant, user: User, body: str, parsed: ParsedIntent, ctx: ReadContext) -> Reply:
        pending = recover_pending(ctx.last_assistant)

        ordinal = parse_ordinal(body)
        if ordinal is not None and pending is not None and not pending.confirm:
            if pending.kind == PendingKind.GROUP:
                return await self._switch_group(tenant, user, body, parsed, pending)
            label = pending.pick(ordinal)
            if label is None:
                return Reply(f"Pick a number between 1 and {len(pending.candidates)}.", pending=pending)
            return await self._resolve_choice(tenant, user, ctx, label, pending.intent)

        intent = parsed.intent
        if intent == Intent.CONFIRM:
            return await self._confirm(tenant, user, ctx, pending)
        if intent == Intent.DENY:
            if pending is not None:
                return Reply("No problem. Text me the tool you need.")
            return Reply("Okay.")
        if intent == Intent.CHECKOUT:
            return await self._checkout(tenant, user, ctx, parsed.tool or body, body)
        if intent == Intent.CHECKIN:
            return await self._checkin(tenant, user, ctx, parsed.tool, body)
        if intent == Intent.STATUS:
            return self._status(ctx, parsed)
        if intent == Intent.AVAILABILITY:
            return self._availability(ctx, parsed)
        if intent == Intent.SELECT_GROUP:
            return await self._switch_group(tenant, user, body, parsed, pending)
        if intent == Intent.REGISTER:
            return Reply(f"You're already registered as {user.name}.")
        if intent == Intent.GREETING:
            return Reply(f"Hey {first_name(user.name)}. What tool do you need?")
        if intent == Intent.THANKS:
            return Reply("👍")
        return Reply(HELP)

    async def _switch_group(self, tenant: Tenant, user: User, body: str, parsed: ParsedIntent, pending: Optional[PendingChoice]) -> Reply:
        if not tenant.requires_group:
            return Reply("Groups aren't used here.")
        group = self._pick_group(tenant, body, parsed, pending)
        if group is None:
            return Reply(
                "Pick one of these groups:\n" + numbered(tenant.group_names),
                pending=PendingChoice(kind=PendingKind.GROUP, candidates=list(tenant.group_names)),
            )
        if group == user.group:
            return Reply(f"You're already in {group}.")
        await self.user_service.set_group(user, group)
        return Reply(f"Switched you to {group}.")

    async def _confirm(self, tenant: Tenant, user: User, ctx: ReadContext, pending: Optional[PendingChoice]) -> Reply:
        if pending is None or pending.kind != PendingKind.TOOL or not pending.candidates:
            return Reply("Not sure what you're saying yes to. What tool do you need?")
        if not pending.is_single:
            return Reply("Which one? Reply with the number.", pending=pending)
        return await self._resolve_choice(tenant, user, ctx, pending.candidates[0], pending.intent)

    async def _resolve_choice(self, tenant: Tenant, user: User, ctx: ReadContext, label: str, intent: Optional[str]) -> Reply:
        """Act on a label the user picked from a list or confirmed."""
        if intent == Intent.CHECKIN.value:
            held = match_held(label, ctx.held_by(user.phone))
            if held.is_exact:
                return await self._do_checkin(tenant, user, held.candidates[0].tool)
            return Reply(f"You don't have the {label} checked out anymore.")

        exact = match_tools(label, ctx.catalog)
        if not exact.is_exact:
            return Reply(f"{label} isn't in the catalog anymore.")
        return await self._do_checkout(tenant, user, exact.candidates[0].name)

    # --- CHECKOUT / CHECKIN ---

    async def _checkout(self, tenant: Tenant, user: User, ctx: ReadContext, query: str, body: str) -> Reply:
        result = match_tools(query, ctx.catalog)
        if not result.found:
            return Reply(f"{query} isn't in the catalog. Managers add tools from the dashboard.")

        names = [tool.name for tool in result.candidates]
        if not result.is_unique:
            return Reply(
                "Which one?\n" + numbered(names),
                pending=PendingChoice(kind=PendingKind.TOOL, intent=Intent.CHECKOUT.value, candidates=names),
            )

        name = names[0]
        if result.is_exact and normalize(query) in normalize(body):
            return await self._do_checkout(tenant, user, name)

        holder = ctx.holder_of(name)
        if holder is not None and holder.phone != user.phone:
            return Reply(f"{holder.tool} is checked out to {holder.person}. Not available right now.")
        return Reply(
            f"Do you mean the {name}?",
            pending=PendingChoice(kind=PendingKind.TOOL, intent=Intent.CHECKOUT.value, candidates=[name], confirm=True),
        )

    async def _do_checkout(self, tenant: Tenant, user: User, name: str) -> Reply:
        result = await self.ledger_service.checkout(tenant.id, name, user.name, user.phone, user.group)
        if result.status == CheckoutStatus.CHECKED_OUT:
            return Reply(f"{name} checked out to you. ✓")
        if result.status == CheckoutStatus.ALREADY_YOURS:
            return Reply(f"You already have the {result.record.tool} checked out.")
        return Reply(f"{result.record.tool} is checked out to {result.record.person}. Not available right now.")

    def _wants_everything(self, tool: Optional[str], body: str) -> bool:
        if tool:
            return normalize(tool) in _ALL_TOOLS
        return bool(_RETURN_ALL.search(normalize(body)))

    async def _checkin(self, tenant: Tenant, user: User, ctx: ReadContext, query: Optional[str], body: str) -> Reply:
        mine = ctx.held_by(user.phone)

        if self._wants_everything(query, body):
            if not mine:
                return Reply("You don't have any tools checked out.")
            result = await self.ledger_service.checkin_all(tenant.id, user.phone)
            if not result.returned:
                return Reply("You don't have any tools checked out.")
            return Reply("Returned: " + ", ".join(r.tool for r in result.returned) + ". ✓")

        if not query:
            if not mine:
                return Reply("You don't have any tools checked out.")
            names = [c.tool for c in mine]
            return Reply(
                "Which tool are you returning?\n" + numbered(names),
                pending=PendingChoice(kind=PendingKind.TOOL, intent=Intent.CHECKIN.value, candidates=names),
            )

        held = match_held(query, mine)
        if held.is_exact:
            return await self._do_checkin(tenant, user, held.candidates[0].tool)
        if held.is_unique:
            name = held.candidates[0].tool
            return Reply(
                f"Do you mean the {name}?",
                pending=PendingChoice(kind=PendingKind.TOOL, intent=Intent.CHECKIN.value, candidates=[name], confirm=True),
            )
        if held.found:
            names = [c.tool for c in held.candidates]
            return Reply(
                "Which one are you returning?\n" + numbered(names),
                pending=PendingChoice(kind=PendingKind.TOOL, intent=Intent.CHECKIN.value, candidates=names),
            )

        # Not one of theirs: name every holder, or say nobody has it
        others = match(query, ctx.active, lambda c: [c.tool])
        if others.found:
            first, *rest = others.candidates
            text = f"{first.tool} is checked out to {first.person}"
            text += "".join(f", {c.tool} to {c.person}" for c in rest)
            return Reply(text + ", not you.")
        catalog = match_tools(query, ctx.catalog)
        label = catalog.candidates[0].name if catalog.is_unique else query
        return Reply(f"No one has the {label} checked out.")

    async def _do_checkin(self, tenant: Tenant, user: User, name: str) -> Reply:
        result = await self.ledger_service.checkin(tenant.id, name, user.phone)
        if result.found:
            return Reply(f"{result.returned.tool} returned. ✓")
        if result.other_holder is not None:
            return Reply(f"{result.other_holder.tool} is checked out to {result.other_holder.person}, not you.")
        return Reply(f"No one has the {name} checked out.")

    # --- READS ---

    def _holder_line(self, name: str, ctx: ReadContext) -> str:
        holder = ctx.holder_of(name)
        if holder is None:
            return f"{name} is available."
        return f"{holder.person} has the {holder.tool} (since {since(holder.checked_out_at)})."

    def _status(self, ctx: ReadContext, parsed: ParsedIntent) -> Reply:
        if parsed.tool:
            result = match_tools(parsed.tool, ctx.catalog)
            if result.found:
                return Reply("\n".join(self._holder_line(t.name, ctx) for t in result.candidates))
            # Checked out under a name since removed from the catalog
            held = match(parsed.tool, ctx.active, lambda c: [c.tool])
            if held.found:
                return Reply("\n".join(self._holder_line(c.tool, ctx) for c in held.candidates))
            return Reply(f"{parsed.tool} isn't in the catalog.")

        if parsed.person:
            wanted = normalize(parsed.person)
            held = [c for c in ctx.active if wanted in normalize(c.person)]
            if not held:
                return Reply(f"{parsed.person} doesn't have anything checked out.")
            return Reply("\n".join(f"{c.person} has the {c.tool} (since {since(c.checked_out_at)})." for c in held))

        if not ctx.active:
            return Reply("Nothing is checked out right now.")
        lines = [f"- {c.tool}: {c.person} (since {since(c.checked_out_at)})" for c in ctx.active]
        return Reply("Checked out:\n" + "\n".join(lines))

    def _availability(self, ctx: ReadContext, parsed: ParsedIntent) -> Reply:
        if parsed.tool:
            result = match_tools(parsed.tool, ctx.catalog)
            if not result.found:
                return Reply(f"{parsed.tool} isn't in the catalog.")
            return Reply("\n".join(self._holder_line(t.name, ctx) for t in result.candidates))

        if not ctx.catalog:
            return Reply("No tools in the catalog yet.")
        held = {c.tool_key for c in ctx.active}
        free = [t.name for t in ctx.catalog if t.name_key not in held]
        if not free:
            return Reply("Everything is checked out right now.")
        return Reply("Available:\n" + "\n".join(f"- {name}" for name in free))
