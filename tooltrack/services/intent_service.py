import json
import logging
from typing import Any, Dict, List, Optional
import openai
from pydantic import ValidationError
from tooltrack.config import get_settings
from tooltrack.schemas.intent import OracleRequest, ParsedIntent

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are the message parser of a text-message tool-tracking bot for job sites.
Workers text when they grab or return a shared tool. You only figure out WHAT the
user wants. You never write replies and never decide whether an action is allowed.

Respond with a single JSON object:
{"intent": <intent>, "tool": <string or null>, "person": <string or null>, "group": <string or null>}

Intents:
- "register": the user is not registered and gives their name. Put it in "person".
- "select_group": the user picks their crew/group. Put it in "group".
- "checkout": the user is taking / grabbing / borrowing a tool.
- "checkin": the user is returning / dropping off a tool. If they return everything
  they have, use tool "all".
- "status": who has a tool, or what is checked out. Put a tool in "tool" or a
  person's name in "person" when asked about one.
- "availability": what is free / available, or whether one tool is free.
- "confirm": yes, yeah, that one, correct.
- "deny": no, nope, cancel, never mind.
- "greeting": hi, hey, hello.
- "thanks": thanks, ok, cool, got it.
- "unknown": anything else.

Tool rules:
- Put the tool as the user wrote it. Use a catalog name only when the user clearly
  means exactly that entry. Never invent tools.
- For checkin, prefer the exact name from the user's own tools.
- A bare number is a pick from a list the bot sent; use "unknown" with no tool.
"""


class OracleError(Exception):
    """The intent service could not be reached or returned garbage."""


def _context_block(request: OracleRequest) -> str:
    lines = []
    if request.is_registered:
        lines.append("User is registered.")
    else:
        lines.append("User is NOT registered (no name on file).")
    if request.group_pending:
        lines.append("User must pick a group: " + ", ".join(request.group_names))
    if request.catalog:
        known = []
        for entry in request.catalog:
            if entry.aliases:
                known.append(f"{entry.name} (aka {', '.join(entry.aliases)})")
            else:
                known.append(entry.name)
        lines.append("Known tools: " + "; ".join(known))
    if request.active_checkouts:
        lines.append("Checked out: " + "; ".join(f"{c.tool} -> {c.person}" for c in request.active_checkouts))
    if request.my_tools:
        lines.append("Your tools: " + "; ".join(request.my_tools))
    return "[CONTEXT] " + " ".join(lines)


def build_messages(request: OracleRequest) -> List[Dict[str, str]]:
    messages = [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "system", "content": _context_block(request)},
    ]
    for msg in request.history:
        role = "user" if msg.role == "user" else "assistant"
        messages.append({"role": role, "content": msg.content})
    messages.append({"role": "user", "content": request.message})
    return messages


def parse_response(content: Optional[str]) -> ParsedIntent:
    try:
        data: Any = json.loads(content or "")
    except json.JSONDecodeError as e:
        raise OracleError(f"Intent service returned invalid JSON: {content!r}") from e
    if not isinstance(data, dict):
        raise OracleError(f"Intent service returned {type(data).__name__}, expected an object")
    try:
        return ParsedIntent.model_validate(data)
    except ValidationError as e:
        raise OracleError(f"Intent service returned an unusable object: {e}") from e


class IntentOracle:
    """Hint generator backed by an OpenAI chat model."""

    def __init__(self, client: Optional[openai.AsyncOpenAI] = None, model: Optional[str] = None):
        settings = get_settings()
        self.client = client or openai.AsyncOpenAI(api_key=settings.OPENAI_API_KEY or None)
        self.model = model or settings.OPENAI_MODEL

    async def parse(self, request: OracleRequest) -> ParsedIntent:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=build_messages(request),
                response_format={"type": "json_object"},
                temperature=0,
                max_tokens=150,
            )
        except openai.OpenAIError as e:
            raise OracleError(f"Intent service call failed: {e}") from e

        parsed = parse_response(response.choices[0].message.content)
        logger.debug("Oracle parsed %r as %s", request.message, parsed)
        return parsed

