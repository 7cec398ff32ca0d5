import json

from productpal.models import Comparison, ComparisonProduct, Message, Product
from productpal.persistence import STORAGE_KEY, JsonFileStorage, MemoryStorage
from productpal.sample_data import build_sample_conversations
from productpal.session_store import ConversationStore


def build_store():
    store = ConversationStore(storage=MemoryStorage())
    conversation = store.create_conversation()
    store.append_message(conversation.id, Message.user("I need a CRM for a small team."))
    store.append_message(
        conversation.id,
        Message.assistant(
            "Try HubSpot",
            products=[Product(name="HubSpot CRM", features=["Free tier"])],
            comparison=Comparison(
                attributes=["Price"],
                products=[ComparisonProduct(name="HubSpot CRM", values=["Free"])],
            ),
        ),
    )
    store.append_message(conversation.id, Message.failure("Something went wrong. Please try again."))
    store.create_conversation(seed_title="Second thread")
    return store


def test_json_file_round_trip(tmp_path):
    source = build_store()
    storage = JsonFileStorage(tmp_path / "conversations.json")
    assert storage.save(source.conversations)

    target = ConversationStore()
    target.replace_all(storage.load())

    assert [c.id for c in target.conversations] == [c.id for c in source.conversations]
    for loaded, original in zip(target.conversations, source.conversations):
        assert loaded.session_id == original.session_id
        assert [m.id for m in loaded.messages] == [m.id for m in original.messages]
        assert loaded == original


def test_snapshot_uses_camel_case_keys(tmp_path):
    path = tmp_path / "conversations.json"
    JsonFileStorage(path).save(build_sample_conversations())
    stored = json.loads(path.read_text(encoding="utf-8"))[STORAGE_KEY][0]
    assert stored["sessionId"] == "sample-session-1"
    assert "createdAt" in stored and "updatedAt" in stored
    assert "products" not in stored["messages"][0]


def test_other_slots_are_preserved(tmp_path):
    path = tmp_path / "conversations.json"
    path.write_text(json.dumps({"theme": "dark"}), encoding="utf-8")
    JsonFileStorage(path).save(build_sample_conversations())
    assert json.loads(path.read_text(encoding="utf-8"))["theme"] == "dark"


def test_missing_file_is_absent(tmp_path):
    assert JsonFileStorage(tmp_path / "nope.json").load() is None


def test_corrupt_json_is_absent(tmp_path):
    path = tmp_path / "conversations.json"
    path.write_text("{not json", encoding="utf-8")
    assert JsonFileStorage(path).load() is None


def test_wrong_shape_is_absent(tmp_path):
    path = tmp_path / "conversations.json"
    path.write_text(json.dumps({STORAGE_KEY: {"id": "x"}}), encoding="utf-8")
    assert JsonFileStorage(path).load() is None

    path.write_text(json.dumps({STORAGE_KEY: [{"id": "x"}]}), encoding="utf-8")
    assert JsonFileStorage(path).load() is None


def test_store_starts_empty_on_corrupt_storage(tmp_path):
    path = tmp_path / "conversations.json"
    path.write_text("[]]", encoding="utf-8")
    store = ConversationStore(storage=JsonFileStorage(path))
    assert store.conversations == []
    assert store.active_id is None


def test_write_failure_returns_false(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("file, not a directory", encoding="utf-8")
    storage = JsonFileStorage(blocker / "conversations.json")
    assert storage.save(build_sample_conversations()) is False
