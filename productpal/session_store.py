from __future__ import annotations

import logging
from typing import Callable, Iterable, List, Optional

from .models import DEFAULT_TITLE, Conversation, ConversationSummary, Message
from .persistence import PersistenceAdapter
from .sample_data import build_sample_conversations
from .utils import generate_id, truncate_title, utc_now_iso

logger = logging.getLogger("productpal.store")


class ConversationStore:
    """Single-writer in-memory collection of conversations with an active pointer."""

    def __init__(
        self,
        storage: Optional[PersistenceAdapter] = None,
        demo_mode: bool = False,
        sample_factory: Callable[[], List[Conversation]] = build_sample_conversations,
    ) -> None:
        """Purpose: Initialize the store and hydrate it from storage (or demo data).
        Inputs/Outputs: Inputs are an optional persistence adapter, the initial demo flag,
            and the demo dataset factory; no return value.
        Side Effects / State: Loads persisted conversations and selects the first one.
        Dependencies: Calls _load or set_demo_mode; uses the PersistenceAdapter protocol.
        Failure Modes: Storage errors are logged and leave the store empty.
        If Removed: The app has no conversation state at all.
        Testing Notes: A storage holding two conversations yields the first as active.
        """
        # Keep collaborators and preload persisted conversations if present.
        self._storage = storage
        self._sample_factory = sample_factory
        self._conversations: List[Conversation] = []
        self._active_id: Optional[str] = None
        self._demo_mode = False
        if demo_mode:
            self.set_demo_mode(True)
        else:
            self._load()

    def _load(self) -> None:
        # Only a non-empty snapshot replaces the empty startup state.
        loaded = self._safe_load()
        if loaded:
            self._conversations = list(loaded)
            self._active_id = loaded[0].id
            logger.info("store loaded conversations=%d", len(loaded))

    def _safe_load(self) -> Optional[List[Conversation]]:
        if self._storage is None:
            return None
        try:
            return self._storage.load()
        except Exception:
            logger.warning("store action=load status=failed", exc_info=True)
            return None

    def _persist(self) -> None:
        """Purpose: Save the whole collection through the persistence adapter.
        Inputs/Outputs: No inputs; no return value.
        Side Effects / State: Writes the snapshot via the adapter.
        Dependencies: Uses the PersistenceAdapter.save contract.
        Failure Modes: Any adapter error is logged and swallowed so the in-memory flow
            never fails; skipped in demo mode and while the collection is empty.
        If Removed: Conversations are lost on restart.
        Testing Notes: A raising adapter must not break append_message.
        """
        # Fire-and-forget write with local exception containment.
        if self._storage is None or self._demo_mode or not self._conversations:
            return
        try:
            saved = self._storage.save(list(self._conversations))
        except Exception:
            logger.warning("store action=save status=failed", exc_info=True)
            return
        if not saved:
            logger.warning("store action=save status=rejected")

    @property
    def conversations(self) -> List[Conversation]:
        return list(self._conversations)

    @property
    def active_id(self) -> Optional[str]:
        return self._active_id

    @property
    def active(self) -> Optional[Conversation]:
        # Resolved by id on every access; never cached.
        return self.get(self._active_id) if self._active_id else None

    @property
    def demo_mode(self) -> bool:
        return self._demo_mode

    def get(self, conversation_id: str) -> Optional[Conversation]:
        return next((c for c in self._conversations if c.id == conversation_id), None)

    def summaries(self) -> List[ConversationSummary]:
        """Purpose: Return sidebar summaries in collection order (newest first).
        Inputs/Outputs: No inputs; returns a list of ConversationSummary.
        Side Effects / State: None.
        Dependencies: Uses the in-memory collection.
        Failure Modes: None; returns an empty list if there are no conversations.
        If Removed: The UI cannot list conversations.
        Testing Notes: Create two conversations and verify the newest comes first.
        """
        # Project each conversation onto its listing fields.
        return [
            ConversationSummary(
                id=conversation.id,
                title=conversation.title,
                updated_at=conversation.updated_at,
                message_count=len(conversation.messages),
            )
            for conversation in self._conversations
        ]

    def create_conversation(self, seed_title: Optional[str] = None) -> Conversation:
        """Purpose: Create an empty conversation and make it active.
        Inputs/Outputs: Input is an optional seed title; output is the new Conversation.
        Side Effects / State: Prepends to the collection, moves the active pointer, persists.
        Dependencies: Uses generate_id, truncate_title, and _persist.
        Failure Modes: None; persistence errors are contained.
        If Removed: New threads cannot be started.
        Testing Notes: Conversation and session ids differ; title defaults when unseeded.
        """
        # Fresh, independent ids for the conversation and its agent session.
        now = utc_now_iso()
        seed = (seed_title or "").strip()
        conversation = Conversation(
            id=generate_id(),
            session_id=generate_id(),
            title=truncate_title(seed) if seed else DEFAULT_TITLE,
            messages=[],
            created_at=now,
            updated_at=now,
        )
        self._conversations.insert(0, conversation)
        self._active_id = conversation.id
        logger.info("store conversation=%s session=%s action=create", conversation.id, conversation.session_id)
        self._persist()
        return conversation

    def append_message(self, conversation_id: str, message: Message) -> bool:
        """Purpose: Append a message to a conversation and refresh its metadata.
        Inputs/Outputs: Inputs are conversation id and Message; output is True when appended.
        Side Effects / State: Mutates messages/updated_at (and title on the first user
            message), then persists.
        Dependencies: Uses truncate_title and _persist.
        Failure Modes: Unknown ids return False and log a warning; never raises.
        If Removed: No turn can be recorded.
        Testing Notes: First user message sets the title to its first 50 chars.
        """
        # Stale ids are a no-op rather than an error.
        conversation = self.get(conversation_id)
        if conversation is None:
            logger.warning("store conversation=%s action=append status=stale", conversation_id)
            return False
        if not conversation.messages and message.role == "user":
            conversation.title = truncate_title(message.content) or conversation.title
        conversation.messages.append(message)
        conversation.updated_at = utc_now_iso()
        self._persist()
        return True

    def remove_error_messages(self, conversation_id: str) -> bool:
        """Purpose: Drop every error-flagged message from a conversation before a retry.
        Inputs/Outputs: Input is conversation id; output is True when the conversation exists.
        Side Effects / State: Rewrites the message list and persists when anything changed.
        Dependencies: Uses _persist.
        Failure Modes: Unknown ids return False.
        If Removed: Retries would leave stale error bubbles in the thread.
        Testing Notes: Only messages with error=True disappear; order is preserved.
        """
        # Remaining messages keep their order.
        conversation = self.get(conversation_id)
        if conversation is None:
            logger.warning("store conversation=%s action=remove_errors status=stale", conversation_id)
            return False
        kept = [message for message in conversation.messages if not message.error]
        removed = len(conversation.messages) - len(kept)
        if removed:
            conversation.messages = kept
            logger.info("store conversation=%s action=remove_errors removed=%d", conversation_id, removed)
            self._persist()
        return True

    def replace_all(self, conversations: Iterable[Conversation]) -> None:
        """Purpose: Replace the whole collection (initial load, demo toggle).
        Inputs/Outputs: Input is an iterable of Conversation; no return value.
        Side Effects / State: Resets the active pointer to the first entry or None; persists.
        Dependencies: Uses _persist.
        Failure Modes: None.
        If Removed: Demo mode and storage reloads cannot swap datasets.
        Testing Notes: An empty list leaves no active conversation.
        """
        # Swap contents and re-point at the first conversation.
        self._conversations = list(conversations)
        self._active_id = self._conversations[0].id if self._conversations else None
        self._persist()

    def select(self, conversation_id: str) -> bool:
        # Pointer only moves to ids present in the collection.
        if self.get(conversation_id) is None:
            logger.warning("store conversation=%s action=select status=stale", conversation_id)
            return False
        self._active_id = conversation_id
        return True

    def set_demo_mode(self, enabled: bool) -> None:
        """Purpose: Toggle between demonstration data and persisted conversations.
        Inputs/Outputs: Input is the desired mode; no return value.
        Side Effects / State: Enabling swaps in a fresh demo dataset and suspends writes;
            disabling reloads from storage (or empties the store when nothing is stored).
        Dependencies: Uses the sample factory, _safe_load, and replace_all.
        Failure Modes: Storage read errors fall back to an empty collection.
        If Removed: The UI cannot preview the product with sample data.
        Testing Notes: Toggle on then off and verify storage content is unchanged.
        """
        # Flip the flag first so replace_all never writes demo data.
        if enabled:
            self._demo_mode = True
            self.replace_all(self._sample_factory())
        else:
            self._demo_mode = False
            self.replace_all(self._safe_load() or [])
        logger.info("store demo_mode=%s conversations=%d", self._demo_mode, len(self._conversations))
