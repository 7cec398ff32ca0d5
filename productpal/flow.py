"""Turn orchestration for the chat client.

Role:
    Owns the per-turn state machine (IDLE -> SENDING -> SUCCEEDED | FAILED -> IDLE)
    and is the only caller that mutates ConversationStore during a turn.

Turn contract:
    Submit:
        Blank text, or any submission while SENDING, is rejected without side effects.
    Sending:
        Ensures an active conversation, appends the user message, clears the draft,
        and notifies the activity observer. Conversation id and session id are captured
        here, so a late reply lands in the conversation it was issued for.
    Succeeded / Failed:
        Appends exactly one assistant message: the normalized reply, or a fixed
        error-flagged sentence when the gateway raised.
    Idle:
        Always notifies the observer that processing stopped.
    Retry:
        Only after a failed turn. Removes error messages and re-runs the Sending path
        for the last user message without appending a second copy of it.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from .activity import ActivityObserver, NullActivityObserver
from .agent_client import AgentGateway
from .models import Message
from .normalizer import ResponseNormalizer
from .session_store import ConversationStore

logger = logging.getLogger("productpal.flow")

GATEWAY_FAILURE_TEXT = "Something went wrong. Please try again."


class TurnState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class MessageFlowController:
    """Orchestrates user submissions, agent calls, normalization, and retry."""

    def __init__(
        self,
        store: ConversationStore,
        gateway: AgentGateway,
        agent_id: str,
        normalizer: Optional[ResponseNormalizer] = None,
        observer: Optional[ActivityObserver] = None,
    ) -> None:
        """Purpose: Wire the controller to its collaborators.
        Inputs/Outputs: Inputs are the store, gateway, agent id, optional normalizer and
            activity observer; no return value.
        Side Effects / State: Starts IDLE with an empty draft buffer.
        Dependencies: ConversationStore, AgentGateway, ResponseNormalizer, ActivityObserver.
        Failure Modes: None at init.
        If Removed: Nothing drives a turn from user text to assistant message.
        Testing Notes: Construct with a fake gateway and a recording observer.
        """
        # Observer is injected; defaults to a no-op.
        self._store = store
        self._gateway = gateway
        self._agent_id = agent_id
        self._normalizer = normalizer or ResponseNormalizer()
        self._observer: ActivityObserver = observer or NullActivityObserver()
        self._state = TurnState.IDLE
        self.draft = ""
        self.last_conversation_id: Optional[str] = None

    @property
    def state(self) -> TurnState:
        return self._state

    @property
    def is_sending(self) -> bool:
        return self._state is TurnState.SENDING

    def _notify_processing(self, processing: bool) -> None:
        # Observer failures never abort a turn.
        try:
            self._observer.set_processing(processing)
        except Exception:
            logger.warning("flow observer=set_processing status=failed", exc_info=True)

    def _notify_reset(self) -> None:
        try:
            self._observer.reset()
        except Exception:
            logger.warning("flow observer=reset status=failed", exc_info=True)

    async def send_message(self, text: str) -> Optional[Message]:
        """Purpose: Submit user text as a new turn.
        Inputs/Outputs: Input is raw user text; output is the appended assistant (or error)
            message, or None when the submission was rejected.
        Side Effects / State: May create a conversation; appends the user message and one
            assistant message; toggles the observer's processing flag.
        Dependencies: Uses ConversationStore, AgentGateway, and ResponseNormalizer via _run_turn.
        Failure Modes: Never raises for gateway or normalization problems.
        If Removed: Users cannot talk to the agent.
        Testing Notes: Blank text and a submission during SENDING return None with no appends.
        """
        # Reject blank input and overlapping turns before touching any state.
        trimmed = (text or "").strip()
        if not trimmed or self.is_sending:
            return None

        conversation = self._store.active
        if conversation is None:
            conversation = self._store.create_conversation(seed_title=trimmed)
        conversation_id, session_id = conversation.id, conversation.session_id

        self._store.append_message(conversation_id, Message.user(trimmed))
        return await self._run_turn(conversation_id, session_id, trimmed)

    async def retry_last_message(self) -> Optional[Message]:
        """Purpose: Re-run the last user message of the active conversation after a failure.
        Inputs/Outputs: No inputs; output is the new assistant message or None when there
            is nothing to retry.
        Side Effects / State: Removes error messages, then appends one assistant message.
        Dependencies: Uses ConversationStore.remove_error_messages and _run_turn.
        Failure Modes: No-op (None) while SENDING, with no active conversation, with fewer
            than two messages, when the last message is not an error, or without any user
            message.
        If Removed: Users have no recovery path after a gateway failure.
        Testing Notes: After a failed turn, retry keeps the user count and replaces the error.
        """
        # Locate the last user turn before mutating anything.
        if self.is_sending:
            return None
        conversation = self._store.active
        if conversation is None or len(conversation.messages) < 2:
            return None
        if not conversation.messages[-1].error:
            return None
        last_user = next((m for m in reversed(conversation.messages) if m.role == "user"), None)
        if last_user is None:
            return None

        conversation_id, session_id = conversation.id, conversation.session_id
        self._store.remove_error_messages(conversation_id)
        logger.info("flow conversation=%s action=retry", conversation_id)
        return await self._run_turn(conversation_id, session_id, last_user.content)

    async def _run_turn(self, conversation_id: str, session_id: str, text: str) -> Message:
        # State flips to SENDING before the first await so overlapping submits are rejected.
        self._state = TurnState.SENDING
        self.last_conversation_id = conversation_id
        self.draft = ""
        self._notify_processing(True)
        logger.info("flow conversation=%s session=%s status=sending", conversation_id, session_id)
        try:
            try:
                reply = await self._gateway.invoke(text, self._agent_id, {"session_id": session_id})
            except Exception:
                logger.exception("flow conversation=%s session=%s status=failed", conversation_id, session_id)
                message = Message.failure(GATEWAY_FAILURE_TEXT)
                self._state = TurnState.FAILED
            else:
                normalized = self._normalizer.normalize(reply)
                message = Message.assistant(
                    normalized.text,
                    products=normalized.products,
                    comparison=normalized.comparison,
                )
                self._state = TurnState.SUCCEEDED
            if not self._store.append_message(conversation_id, message):
                logger.warning("flow conversation=%s status=reply_dropped", conversation_id)
            logger.info("flow conversation=%s status=%s", conversation_id, self._state.value)
            return message
        finally:
            self._state = TurnState.IDLE
            self._notify_processing(False)

    def new_conversation(self) -> str:
        """Purpose: Start an empty conversation on explicit user request.
        Inputs/Outputs: No inputs; output is the new conversation id.
        Side Effects / State: Creates and activates a conversation, clears the draft, resets
            the activity observer.
        Dependencies: Uses ConversationStore.create_conversation.
        Failure Modes: None; observer errors are contained.
        If Removed: The "new conversation" action is unavailable.
        Testing Notes: The new conversation is active and titled "New Conversation".
        """
        # Fresh thread, empty input, cleared activity panel.
        conversation = self._store.create_conversation()
        self.draft = ""
        self._notify_reset()
        return conversation.id

    def select_conversation(self, conversation_id: str) -> bool:
        # Switching threads resets the activity panel only when the switch happened.
        selected = self._store.select(conversation_id)
        if selected:
            self._notify_reset()
        return selected

    def set_sample_data(self, enabled: bool) -> None:
        self._store.set_demo_mode(enabled)
