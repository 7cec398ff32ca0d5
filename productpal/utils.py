import json
import uuid
from datetime import datetime, timezone
from typing import Any, Optional, Tuple

TITLE_MAX_CHARS = 50


def generate_id() -> str:
    """Purpose: Produce a collision-resistant identifier for conversations, sessions, and messages.
    Inputs/Outputs: No inputs; output is a 32-char lowercase hex string.
    Side Effects / State: None; draws from the OS random source via uuid4.
    Dependencies: Uses uuid; called by the store, the flow controller, and message factories.
    Failure Modes: None.
    If Removed: New conversations and messages have no identity and lookups break.
    Testing Notes: Generate many ids and verify they are unique.
    """
    # Random UUID rendered as compact hex.
    return uuid.uuid4().hex


def utc_now_iso() -> str:
    """Purpose: Return the current instant as an ISO-8601 UTC string with millisecond precision.
    Inputs/Outputs: No inputs; output looks like "2024-05-01T12:30:00.123Z".
    Side Effects / State: Reads the system clock.
    Dependencies: Uses datetime; used for message timestamps and conversation created/updated.
    Failure Modes: None.
    If Removed: Timestamps lose a stable, sortable string format.
    Testing Notes: Verify the suffix is "Z" and the value parses with fromisoformat.
    """
    # Millisecond precision matches the persisted snapshot format.
    return format_iso(datetime.now(timezone.utc))


def format_iso(moment: datetime) -> str:
    # Render an aware datetime the same way utc_now_iso does.
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def truncate_title(text: str, limit: int = TITLE_MAX_CHARS) -> str:
    """Purpose: Derive a conversation title from message text.
    Inputs/Outputs: Input is the message text and a char limit; output is the first `limit` chars.
    Side Effects / State: None; pure function.
    Dependencies: Used by ConversationStore when the first user message lands.
    Failure Modes: Returns an empty string for falsy input.
    If Removed: Sidebar titles fall back to the default for every conversation.
    Testing Notes: An 80-char input yields exactly 50 chars.
    """
    # Plain slice; callers pass already-trimmed text.
    if not text:
        return ""
    return text[:limit]


def parse_json(text: Any) -> Tuple[bool, Any]:
    """Purpose: Parse a JSON document without raising.
    Inputs/Outputs: Input is any value; output is (parsed_ok, value). Non-string input,
        blank strings, and malformed JSON return (False, None).
    Side Effects / State: None; pure function.
    Dependencies: Uses json.loads; called by the response normalizer and storage loader.
    Failure Modes: None; decode errors are reported through the flag, so a literal
        JSON null is distinguishable from a parse failure.
    If Removed: Normalization has to catch decode errors inline at every probe.
    Testing Notes: Check '{"a": 1}', '"x"', 'null', and 'not json'.
    """
    # Only strings are candidates for decoding.
    if not isinstance(text, str) or not text.strip():
        return False, None
    try:
        return True, json.loads(text)
    except json.JSONDecodeError:
        return False, None


def first_text(value: Any, keys: Tuple[str, ...]) -> Optional[str]:
    """Purpose: Probe a mapping for the first non-empty string stored under one of `keys`.
    Inputs/Outputs: Inputs are a candidate mapping and an ordered key tuple; output is the
        string or None.
    Side Effects / State: None; pure function.
    Dependencies: Used by the response normalizer for text-key precedence.
    Failure Modes: Non-mapping input returns None.
    If Removed: Key precedence has to be re-implemented at each extraction site.
    Testing Notes: A mapping with both "response" and "message" yields the "response" value.
    """
    # Walk keys in priority order; empty strings do not count.
    if not isinstance(value, dict):
        return None
    for key in keys:
        candidate = value.get(key)
        if isinstance(candidate, str) and candidate:
            return candidate
    return None
