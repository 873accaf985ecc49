import re
from typing import Optional

def normalize_phone(phone: str) -> str:
    # Twilio prefixes WhatsApp senders with the channel name
    phone = (phone or "").strip()
    if phone.lower().startswith("whatsapp:"):
        phone = phone[len("whatsapp:"):]
    clean = re.sub(r'[^0-9+]', '', phone)
    if clean and not clean.startswith('+'):
        clean = "+" + clean
    return clean

def normalize_join_code(code: str) -> str:
    return re.sub(r"\s+", "", (code or "")).upper()

def normalize_name(name: str, max_length: int = 60) -> str:
    name = re.sub(r"\s+", " ", (name or "")).strip()
    return name[:max_length].strip()

def tool_key(tool_name: str) -> str:
    """Case-insensitive identity of a tool name within a tenant."""
    return re.sub(r"\s+", " ", (tool_name or "")).strip().lower()

def parse_ordinal(text: str) -> Optional[int]:
    """Return the positive integer a message consists of, if any ("2", " 2. ", "#2")."""
    match = re.fullmatch(r"\s*#?(\d{1,3})[.)]?\s*", text or "")
    if not match:
        return None
    value = int(match.group(1))
    return value if value > 0 else None
