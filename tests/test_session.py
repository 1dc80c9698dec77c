"""Tests for session management"""

from ctxwin.session.context import SummaryCache
from ctxwin.session.message import AssistantMessage, ToolCall, ToolMessage, UserMessage
from ctxwin.session.session import Session
from ctxwin.storage.storage import Storage


class TestSession:
    def test_create_session(self):
        session = Session.create()

        assert session.id.startswith("session_")
        assert session.messages == []
        assert session.summary_cache is None

    def test_add_message(self):
        session = Session.create()
        session.add_message(UserMessage(content="Hello"))

        assert len(session.messages) == 1
        assert session.messages[0].role == "user"
        assert session.messages[0].content == "Hello"

    def test_get_messages_is_a_snapshot(self):
        session = Session.create()
        session.add_message(UserMessage(content="Hello"))

        messages = session.get_messages()
        messages.append(UserMessage(content="not in session"))

        assert len(session.messages) == 1

    def test_load_round_trips_history_and_cache(self):
        session = Session.create()
        session.add_message(UserMessage(content="Read the file"))
        session.add_message(AssistantMessage(tool_calls=[ToolCall(id="c1", name="read", arguments='{"path": "a"}')]))
        session.add_message(ToolMessage(content="contents", tool_call_id="c1", name="read"))
        session.set_summary_cache(SummaryCache(text="Résumé: user reads 'a' ✓", covers_messages_up_to_index=2))

        loaded = Session.load(session.id)

        assert loaded.messages == session.messages
        assert loaded.summary_cache == SummaryCache(text="Résumé: user reads 'a' ✓", covers_messages_up_to_index=2)

    def test_load_missing_session(self):
        assert Session.load("session_missing") is None

    def test_cache_beyond_history_is_discarded(self):
        session = Session.create()
        session.add_message(UserMessage(content="Hello"))
        data = Storage.read(["session", session.id])
        data["summary_cache"] = {"text": "summary", "covers_messages_up_to_index": 5}
        Storage.write(["session", session.id], data)

        assert Session.load(session.id).summary_cache is None

    def test_malformed_cache_is_discarded(self):
        session = Session.create()
        data = Storage.read(["session", session.id])
        data["summary_cache"] = {"text": "summary", "covers_messages_up_to_index": -3}
        Storage.write(["session", session.id], data)

        assert Session.load(session.id).summary_cache is None

    def test_clear_drops_cache(self):
        session = Session.create()
        session.add_message(UserMessage(content="Hello"))
        session.set_summary_cache(SummaryCache(text="s", covers_messages_up_to_index=1))

        session.clear()

        loaded = Session.load(session.id)
        assert loaded.messages == []
        assert loaded.summary_cache is None

    def test_list_sessions(self):
        first = Session.create(title="first")
        second = Session.create(title="second")
        second.add_message(UserMessage(content="Hello"))

        listed = Session.list_sessions()

        assert [s["id"] for s in listed] == [second.id, first.id]
        assert listed[0]["messages"] == 1
