import pytest

from productpal.models import DEFAULT_TITLE, Message
from productpal.persistence import MemoryStorage
from productpal.session_store import ConversationStore


class ExplodingStorage:
    def load(self):
        raise OSError("disk gone")

    def save(self, conversations):
        raise OSError("disk gone")


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def store(storage):
    return ConversationStore(storage=storage)


def test_create_conversation_becomes_active(store):
    conversation = store.create_conversation()
    assert store.active_id == conversation.id
    assert store.active is conversation
    assert conversation.title == DEFAULT_TITLE
    assert conversation.session_id != conversation.id
    assert conversation.messages == []
    assert conversation.created_at == conversation.updated_at


def test_new_conversations_are_listed_first(store):
    first = store.create_conversation(seed_title="first")
    second = store.create_conversation(seed_title="second")
    assert [s.id for s in store.summaries()] == [second.id, first.id]
    assert store.summaries()[0].message_count == 0


def test_first_user_message_sets_title(store):
    conversation = store.create_conversation()
    assert store.append_message(conversation.id, Message.user("Find me a CRM"))
    assert conversation.title == "Find me a CRM"

    store.append_message(conversation.id, Message.user("Something else entirely"))
    assert conversation.title == "Find me a CRM"


def test_long_first_message_truncates_title(store):
    conversation = store.create_conversation()
    store.append_message(conversation.id, Message.user("x" * 80))
    assert len(conversation.title) == 50


def test_first_assistant_message_keeps_title(store):
    conversation = store.create_conversation()
    store.append_message(conversation.id, Message.assistant("Hello"))
    assert conversation.title == DEFAULT_TITLE


def test_append_refreshes_updated_at(store, monkeypatch):
    conversation = store.create_conversation()
    monkeypatch.setattr("productpal.session_store.utc_now_iso", lambda: "2030-01-01T00:00:00.000Z")
    store.append_message(conversation.id, Message.user("hi"))
    assert conversation.updated_at == "2030-01-01T00:00:00.000Z"


def test_append_to_unknown_conversation_is_noop(store):
    assert store.append_message("missing", Message.user("hi")) is False
    assert store.conversations == []


def test_remove_error_messages(store):
    conversation = store.create_conversation()
    store.append_message(conversation.id, Message.user("hi"))
    store.append_message(conversation.id, Message.failure("Something went wrong. Please try again."))
    store.append_message(conversation.id, Message.assistant("ok"))

    assert store.remove_error_messages(conversation.id)
    assert [m.content for m in conversation.messages] == ["hi", "ok"]
    assert store.remove_error_messages("missing") is False


def test_replace_all_selects_first(store):
    a = store.create_conversation(seed_title="a")
    b = store.create_conversation(seed_title="b")
    store.replace_all([a, b])
    assert store.active_id == a.id

    store.replace_all([])
    assert store.active_id is None
    assert store.active is None


def test_select_unknown_keeps_pointer(store):
    a = store.create_conversation()
    b = store.create_conversation()
    assert store.select(a.id)
    assert store.active_id == a.id
    assert store.select("missing") is False
    assert store.active_id == a.id
    assert b.messages == []


def test_mutations_are_persisted(storage, store):
    conversation = store.create_conversation()
    store.append_message(conversation.id, Message.user("persist me"))

    reloaded = ConversationStore(storage=storage)
    assert reloaded.active_id == conversation.id
    assert reloaded.active.messages[0].content == "persist me"


def test_storage_failures_are_contained():
    store = ConversationStore(storage=ExplodingStorage())
    conversation = store.create_conversation()
    assert store.append_message(conversation.id, Message.user("still works"))
    assert len(conversation.messages) == 1


class TestDemoMode:
    def test_enable_swaps_in_sample_data(self, store):
        store.create_conversation(seed_title="real")
        store.set_demo_mode(True)
        assert store.demo_mode
        assert store.active_id == "sample-1"
        assert len(store.active.messages) == 2

    def test_demo_mode_suspends_writes(self, storage, store):
        real = store.create_conversation(seed_title="real")
        store.set_demo_mode(True)
        store.append_message("sample-1", Message.user("demo only"))

        stored = storage.load()
        assert [c.id for c in stored] == [real.id]

    def test_disable_reloads_from_storage(self, store):
        real = store.create_conversation(seed_title="real")
        store.set_demo_mode(True)
        store.set_demo_mode(False)
        assert not store.demo_mode
        assert [c.id for c in store.conversations] == [real.id]
        assert store.active_id == real.id

    def test_disable_without_stored_data_empties_store(self):
        store = ConversationStore(storage=MemoryStorage(), demo_mode=True)
        store.set_demo_mode(False)
        assert store.conversations == []
        assert store.active_id is None

    def test_sample_data_is_fresh_each_time(self, store):
        store.set_demo_mode(True)
        store.append_message("sample-1", Message.user("scribble"))
        store.set_demo_mode(True)
        assert len(store.active.messages) == 2
