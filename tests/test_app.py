import threading
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from productpal.app import create_app
from productpal.config import Settings
from productpal.persistence import MemoryStorage

CRM_REPLY = {
    "success": True,
    "response": {
        "result": {
            "response": "Try HubSpot",
            "products": [{"name": "HubSpot CRM", "price": "Free"}],
            "comparison": {"attributes": ["Price"], "products": [{"name": "HubSpot CRM", "values": ["Free"]}]},
        }
    },
}


class QueueGateway:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)

    async def invoke(self, message, agent_id, options):
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def make_settings(sample_data=False):
    return Settings(
        agent_api_url="https://agent.test/api/agent",
        agent_api_key="",
        agent_id="agent-1",
        agent_timeout=5.0,
        storage_path=Path("unused.json"),
        storage_key="productpal_conversations",
        sample_data=sample_data,
    )


def make_client(*outcomes, sample_data=False, storage=None):
    app = create_app(
        settings=make_settings(sample_data),
        gateway=QueueGateway(*outcomes),
        storage=storage or MemoryStorage(),
    )
    return TestClient(app)


def test_chat_creates_conversation_and_returns_message():
    client = make_client(CRM_REPLY)
    response = client.post("/api/chat", json={"message": "Find me a CRM"})
    assert response.status_code == 200
    body = response.json()
    assert body["message"]["content"] == "Try HubSpot"
    assert body["message"]["products"][0] == {"name": "HubSpot CRM", "price": "Free"}
    assert body["message"]["comparison"]["attributes"] == ["Price"]

    listing = client.get("/api/conversations").json()
    assert listing["activeId"] == body["conversationId"]
    assert listing["conversations"][0]["title"] == "Find me a CRM"
    assert listing["conversations"][0]["messageCount"] == 2


def test_blank_chat_is_rejected():
    client = make_client()
    assert client.post("/api/chat", json={"message": "   "}).status_code == 400
    assert client.get("/api/conversations").json()["conversations"] == []


def test_failed_turn_then_retry():
    client = make_client(RuntimeError("agent down"), CRM_REPLY)
    failed = client.post("/api/chat", json={"message": "Find me a CRM"}).json()
    assert failed["message"]["error"] is True

    retried = client.post("/api/retry")
    assert retried.status_code == 200
    assert retried.json()["message"]["content"] == "Try HubSpot"

    conversation = client.get(f"/api/conversations/{failed['conversationId']}").json()
    assert [m["role"] for m in conversation["messages"]] == ["user", "assistant"]
    assert conversation["sessionId"] != conversation["id"]


def test_retry_without_history_conflicts():
    client = make_client()
    assert client.post("/api/retry").status_code == 409


def test_new_and_select_conversation():
    client = make_client()
    first = client.post("/api/conversations").json()
    second = client.post("/api/conversations").json()
    assert first["title"] == "New Conversation"
    assert client.get("/api/conversations").json()["activeId"] == second["id"]

    selected = client.post(f"/api/conversations/{first['id']}/select")
    assert selected.status_code == 200
    assert client.get("/api/conversations").json()["activeId"] == first["id"]


@pytest.mark.parametrize(
    "method, path",
    [("get", "/api/conversations/missing"), ("post", "/api/conversations/missing/select")],
)
def test_unknown_conversation_is_404(method, path):
    client = make_client()
    assert getattr(client, method)(path).status_code == 404


def test_sample_data_toggle_does_not_touch_storage():
    storage = MemoryStorage()
    client = make_client(CRM_REPLY, storage=storage)
    client.post("/api/chat", json={"message": "real question"})
    saved = dict(storage.slots)

    assert client.put("/api/sample-data", json={"enabled": True}).json() == {"enabled": True}
    listing = client.get("/api/conversations").json()
    assert listing["sampleData"] is True
    assert listing["activeId"] == "sample-1"
    assert storage.slots == saved

    client.put("/api/sample-data", json={"enabled": False})
    listing = client.get("/api/conversations").json()
    assert [c["title"] for c in listing["conversations"]] == ["real question"]


def test_start_in_sample_mode():
    client = make_client(sample_data=True)
    assert client.get("/api/sample-data").json() == {"enabled": True}
    conversation = client.get("/api/conversations/sample-1").json()
    assert len(conversation["messages"][1]["products"]) == 2


def test_activity_and_suggestions():
    client = make_client(CRM_REPLY)
    client.post("/api/chat", json={"message": "hello"})
    activity = client.get("/api/activity").json()
    assert activity["processing"] is False
    assert [e["event"] for e in activity["events"]] == ["processing_started", "processing_stopped"]
    assert len(client.get("/api/suggestions").json()) == 4


class ThreadRecordingStorage(MemoryStorage):
    def __init__(self):
        super().__init__()
        self.writer_threads = set()

    def save(self, conversations):
        self.writer_threads.add(threading.get_ident())
        return super().save(conversations)


def test_store_writes_share_one_thread():
    storage = ThreadRecordingStorage()
    with make_client(CRM_REPLY, storage=storage) as client:
        client.post("/api/chat", json={"message": "Find me a CRM"})
        first = client.post("/api/conversations").json()
        client.post(f"/api/conversations/{first['id']}/select")
        client.put("/api/sample-data", json={"enabled": False})

    assert storage.writer_threads
    assert len(storage.writer_threads) == 1


def test_shutdown_closes_gateway():
    class ClosingGateway(QueueGateway):
        closed = False

        async def close(self):
            ClosingGateway.closed = True

    app = create_app(settings=make_settings(), gateway=ClosingGateway(), storage=MemoryStorage())
    with TestClient(app):
        pass
    assert ClosingGateway.closed
