"""
Answer content helpers - pull markdown out of loosely-shaped payloads and
strip active content before it is shown or saved.
"""

import json
import re
from typing import Any, Optional

# Tried in order on downloaded results
RESULT_FIELDS = ["content", "markdown", "report", "text", "data", "body", "result", "output"]

# Tried in order on a status payload that says the response is ready
READY_FIELDS = ["content", "response_content", "message", "response"]

MIN_FALLBACK_LENGTH = 100

_SCRIPT_RE = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_IFRAME_RE = re.compile(r"<iframe\b[^<]*(?:(?!</iframe>)<[^<]*)*</iframe>", re.IGNORECASE)
_OBJECT_RE = re.compile(r"<(object|embed)\b[^<]*(?:(?!</\1>)<[^<]*)*</\1>", re.IGNORECASE)
_JS_LINK_RE = re.compile(r"\[([^\]]+)\]\(javascript:(?:[^()]|\([^()]*\))*\)", re.IGNORECASE)
_DATA_LINK_RE = re.compile(r"\[([^\]]+)\]\(data:(?!image)(?:[^()]|\([^()]*\))*\)", re.IGNORECASE)


def sanitize_markdown(content: str) -> str:
    """Remove script/iframe/object/embed blocks and neutralize unsafe link targets."""
    content = _SCRIPT_RE.sub("", content)
    content = _IFRAME_RE.sub("", content)
    content = _OBJECT_RE.sub("", content)
    content = _JS_LINK_RE.sub(r"[\1](#)", content)
    content = _DATA_LINK_RE.sub(r"[\1](#)", content)
    return content


def first_string_field(data: dict, fields: list[str]) -> Optional[str]:
    """First non-empty string value among `fields`, in order."""
    for name in fields:
        value = data.get(name)
        if isinstance(value, str) and value:
            return value
    return None


def _single_long_string(data: dict) -> Optional[str]:
    long_strings = [v for v in data.values() if isinstance(v, str) and len(v) > MIN_FALLBACK_LENGTH]
    if len(long_strings) == 1:
        return long_strings[0]
    return None


def extract_from_object(data: Any) -> Optional[str]:
    """Find the markdown inside an already-decoded JSON value."""
    if isinstance(data, list):
        data = data[0] if data else None
    if not isinstance(data, dict):
        return None

    found = first_string_field(data, RESULT_FIELDS)
    if found:
        return found

    nested = data.get("report")
    if isinstance(nested, dict):
        found = first_string_field(nested, RESULT_FIELDS)
        if found:
            return found

    return _single_long_string(data)


def extract_markdown(raw: str) -> str:
    """
    Plain text passes through. JSON is searched for the content field;
    if nothing matches, the raw text is returned unchanged.
    """
    trimmed = raw.strip()
    if not trimmed.startswith(("{", "[")):
        return raw

    try:
        data = json.loads(trimmed)
    except json.JSONDecodeError:
        return raw

    found = extract_from_object(data)
    if found is None:
        keys = list(data.keys()) if isinstance(data, dict) else type(data).__name__
        print(f"[content] No markdown field in JSON response. Fields: {keys}")
        return raw
    return found


def last_assistant_message(data: Any) -> Optional[str]:
    """Last assistant message content from a conversation payload."""
    messages = []
    if isinstance(data, list):
        messages = data
    elif isinstance(data, dict):
        if isinstance(data.get("messages"), list):
            messages = data["messages"]
        elif isinstance(data.get("conversation"), dict) and isinstance(data["conversation"].get("messages"), list):
            messages = data["conversation"]["messages"]

    for msg in reversed(messages):
        if isinstance(msg, dict) and msg.get("role") in ("assistant", "AI") and msg.get("content"):
            return str(msg["content"])
    return None
