from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException

from .activity import ActivityTracker
from .agent_client import AgentGateway, HttpAgentGateway
from .config import Settings, load_settings
from .flow import MessageFlowController
from .models import ChatRequest, Message, SampleDataRequest
from .persistence import JsonFileStorage, PersistenceAdapter
from .sample_data import SUGGESTED_PROMPTS
from .session_store import ConversationStore

BASE_DIR = Path(__file__).resolve().parent

log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
log_level = getattr(logging, log_level_name, logging.INFO)
if not logging.getLogger().handlers:
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

logging.getLogger("productpal").setLevel(log_level)

ENV_PATH = BASE_DIR / ".env"
if ENV_PATH.exists():
    load_dotenv(ENV_PATH, override=True)


def _turn_payload(conversation_id: Optional[str], message: Message) -> Dict[str, Any]:
    return {"conversationId": conversation_id, "message": message.to_payload()}


def create_app(
    settings: Optional[Settings] = None,
    gateway: Optional[AgentGateway] = None,
    storage: Optional[PersistenceAdapter] = None,
    observer: Optional[ActivityTracker] = None,
) -> FastAPI:
    """Purpose: Build the FastAPI app around a store, gateway, and flow controller.
    Inputs/Outputs: Inputs are optional overrides for settings and collaborators; output
        is a configured FastAPI instance.
    Side Effects / State: Loads persisted conversations through the storage adapter.
    Dependencies: Uses ConversationStore, MessageFlowController, HttpAgentGateway,
        JsonFileStorage, and ActivityTracker.
    Failure Modes: Invalid settings raise at load_settings; storage errors are contained.
    If Removed: The UI has no API to drive conversations.
    Testing Notes: Pass a fake gateway and MemoryStorage, then exercise with TestClient.
    """
    # Resolve collaborators, defaulting to the HTTP gateway and the JSON file store.
    settings = settings or load_settings()
    storage = storage or JsonFileStorage(settings.storage_path, key=settings.storage_key)
    gateway = gateway or HttpAgentGateway(settings)
    tracker = observer or ActivityTracker()
    store = ConversationStore(storage=storage, demo_mode=settings.sample_data)
    controller = MessageFlowController(
        store=store,
        gateway=gateway,
        agent_id=settings.agent_id,
        observer=tracker,
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        # Release the gateway HTTP client on shutdown; fakes may not have one.
        yield
        close = getattr(gateway, "close", None)
        if close is not None:
            await close()

    app = FastAPI(title="ProductPal Conversational Client", lifespan=lifespan)
    app.state.store = store
    app.state.controller = controller
    app.state.activity = tracker

    # Handlers touching the store stay async so all writes run on the event loop thread.
    @app.get("/api/conversations")
    async def list_conversations() -> Dict[str, Any]:
        """Purpose: Return conversation summaries for the sidebar.
        Inputs/Outputs: No inputs; output has activeId, sampleData, and summaries.
        Side Effects / State: None.
        Dependencies: Uses ConversationStore.summaries.
        Failure Modes: None; returns an empty list if no conversations.
        If Removed: UI cannot display the conversation list.
        Testing Notes: Create conversations and verify newest-first ordering.
        """
        # Serialize summaries for the frontend.
        return {
            "activeId": store.active_id,
            "sampleData": store.demo_mode,
            "conversations": [summary.to_payload() for summary in store.summaries()],
        }

    @app.post("/api/conversations")
    async def create_conversation() -> Dict[str, Any]:
        # Explicit "new conversation" action.
        conversation_id = controller.new_conversation()
        conversation = store.get(conversation_id)
        return conversation.to_payload() if conversation else {}

    @app.get("/api/conversations/{conversation_id}")
    async def get_conversation(conversation_id: str) -> Dict[str, Any]:
        """Purpose: Return one conversation with all messages.
        Inputs/Outputs: Input is conversation_id; output is the conversation payload.
        Side Effects / State: None.
        Dependencies: Uses ConversationStore.get.
        Failure Modes: Unknown ids return 404.
        If Removed: Frontend cannot load a transcript.
        Testing Notes: Request a known and an unknown id.
        """
        # Stale ids surface as 404 rather than an error payload.
        conversation = store.get(conversation_id)
        if conversation is None:
            raise HTTPException(status_code=404, detail="Conversation not found")
        return conversation.to_payload()

    @app.post("/api/conversations/{conversation_id}/select")
    async def select_conversation(conversation_id: str) -> Dict[str, Any]:
        if not controller.select_conversation(conversation_id):
            raise HTTPException(status_code=404, detail="Conversation not found")
        return store.get(conversation_id).to_payload()

    @app.post("/api/chat")
    async def chat(request: ChatRequest) -> Dict[str, Any]:
        """Purpose: Submit user text and return the resulting assistant message.
        Inputs/Outputs: Input is ChatRequest; output has conversationId and message.
        Side Effects / State: Appends user and assistant messages; persists.
        Dependencies: Uses MessageFlowController.send_message.
        Failure Modes: Blank text returns 400; a turn already in flight returns 409.
            Agent failures come back as an error-flagged message, not an HTTP error.
        If Removed: Core chat functionality is unavailable.
        Testing Notes: Send a message with a fake gateway and verify the payload.
        """
        # Validate here so the controller's silent rejection maps to a status code.
        if not request.message.strip():
            raise HTTPException(status_code=400, detail="Message must not be empty")
        message = await controller.send_message(request.message)
        if message is None:
            raise HTTPException(status_code=409, detail="A message is already being processed")
        return _turn_payload(controller.last_conversation_id, message)

    @app.post("/api/retry")
    async def retry() -> Dict[str, Any]:
        # Retry always targets the active conversation.
        message = await controller.retry_last_message()
        if message is None:
            raise HTTPException(status_code=409, detail="Nothing to retry")
        return _turn_payload(controller.last_conversation_id, message)

    @app.get("/api/sample-data")
    async def get_sample_data() -> Dict[str, bool]:
        return {"enabled": store.demo_mode}

    @app.put("/api/sample-data")
    async def set_sample_data(request: SampleDataRequest) -> Dict[str, bool]:
        controller.set_sample_data(request.enabled)
        return {"enabled": store.demo_mode}

    @app.get("/api/activity")
    async def get_activity() -> Dict[str, Any]:
        return {"processing": tracker.processing, "events": tracker.events()}

    @app.get("/api/suggestions")
    def get_suggestions() -> List[str]:
        return list(SUGGESTED_PROMPTS)

    return app


app = create_app()
