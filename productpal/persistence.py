from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from pydantic import ValidationError

from .models import Conversation

logger = logging.getLogger("productpal.storage")

STORAGE_KEY = "productpal_conversations"


class PersistenceAdapter(Protocol):
    """Load/save snapshot boundary used by ConversationStore."""

    def load(self) -> Optional[List[Conversation]]:
        ...

    def save(self, conversations: List[Conversation]) -> bool:
        ...


def decode_snapshot(value: Any) -> Optional[List[Conversation]]:
    """Purpose: Validate a stored slot value into conversations.
    Inputs/Outputs: Input is the raw slot value; output is a list of Conversation or None.
    Side Effects / State: Logs a warning when the stored value is corrupt.
    Dependencies: Uses the Conversation model for validation.
    Failure Modes: Non-list values and validation errors return None (no prior data).
    If Removed: Corrupt snapshots could crash startup.
    Testing Notes: A list with one malformed conversation yields None.
    """
    # Treat anything that is not a list of valid conversations as absent.
    if value is None:
        return None
    if not isinstance(value, list):
        logger.warning("storage snapshot=invalid reason=not_a_list")
        return None
    try:
        return [Conversation.model_validate(item) for item in value]
    except ValidationError as exc:
        logger.warning("storage snapshot=invalid errors=%d", exc.error_count())
        return None


def encode_snapshot(conversations: List[Conversation]) -> List[Dict[str, Any]]:
    # Same shape decode_snapshot accepts.
    return [conversation.to_payload() for conversation in conversations]


class JsonFileStorage:
    """Key-value JSON file holding the conversation snapshot under a fixed slot."""

    def __init__(self, path: Path, key: str = STORAGE_KEY) -> None:
        """Purpose: Configure the backing file and slot name.
        Inputs/Outputs: Inputs are the file path and slot key; no return value.
        Side Effects / State: None until load/save is called.
        Dependencies: Used by ConversationStore via the PersistenceAdapter protocol.
        Failure Modes: None at init.
        If Removed: Conversations do not survive a restart.
        Testing Notes: Use a tmp_path file and verify other slots are preserved on save.
        """
        # Keep configuration only; the file is read lazily.
        self._path = path
        self._key = key

    def _read_slots(self) -> Dict[str, Any]:
        # Missing or undecodable files behave like an empty store.
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError):
            logger.warning("storage path=%s status=unreadable", self._path, exc_info=True)
            return {}
        return data if isinstance(data, dict) else {}

    def load(self) -> Optional[List[Conversation]]:
        """Purpose: Load the conversation snapshot from disk.
        Inputs/Outputs: No inputs; returns a list of Conversation or None when absent.
        Side Effects / State: Reads the backing file.
        Dependencies: Uses _read_slots and decode_snapshot.
        Failure Modes: Missing file, bad JSON, or invalid shape return None.
        If Removed: Prior conversations are never restored.
        Testing Notes: Corrupt JSON should not raise; a saved snapshot should reload equal.
        """
        # Read the slot and validate it.
        return decode_snapshot(self._read_slots().get(self._key))

    def save(self, conversations: List[Conversation]) -> bool:
        """Purpose: Persist the conversation snapshot into the slot.
        Inputs/Outputs: Input is the conversation list; output is True on success.
        Side Effects / State: Rewrites the backing file atomically via a temp file.
        Dependencies: Uses encode_snapshot, json.dumps, and os.replace.
        Failure Modes: IO errors are logged and reported as False.
        If Removed: New messages are never written to disk.
        Testing Notes: Save then load and compare ids and message order.
        """
        # Merge into existing slots and swap the file in one step.
        slots = self._read_slots()
        slots[self._key] = encode_snapshot(conversations)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(slots, ensure_ascii=False, indent=2), encoding="utf-8")
            os.replace(tmp_path, self._path)
        except OSError:
            logger.warning("storage path=%s status=write_failed", self._path, exc_info=True)
            return False
        return True


class MemoryStorage:
    """In-process key-value storage with the same snapshot semantics as JsonFileStorage."""

    def __init__(self, key: str = STORAGE_KEY) -> None:
        self._key = key
        self.slots: Dict[str, Any] = {}

    def load(self) -> Optional[List[Conversation]]:
        return decode_snapshot(self.slots.get(self._key))

    def save(self, conversations: List[Conversation]) -> bool:
        self.slots[self._key] = encode_snapshot(conversations)
        return True
