import logging

import pytest
import requests

from src.blogify.core import state_machine as sm
from src.blogify.core.errors import (
    AuthError,
    GenerationInProgressError,
    PersistError,
    StreamOpenError,
    StreamReadError,
    ValidationError,
)
from src.blogify.services import generation
from src.blogify.services.generation import (
    GenerationListener,
    GenerationOrchestrator,
    chat_title_from_prompt,
    load_chat,
    reply_without_streaming,
)

from .utils import FakeResponse, RecordingStore, agent_with, split_every, sse


class Recorder(GenerationListener):
    def __init__(self):
        self.states = []
        self.deltas = []
        self.events = []
        self.errors = []
        self.completed = []

    def on_state(self, old, new):
        self.states.append(new)

    def on_event(self, event):
        self.events.append(event)

    def on_delta(self, text):
        self.deltas.append(text)

    def on_error(self, error):
        self.errors.append(error)

    def on_complete(self, result):
        self.completed.append(result)


@pytest.fixture
def store():
    return RecordingStore()


@pytest.fixture
def chat(store):
    return store.create_chat("New Chat")


def _stream(*payloads, size=5):
    return FakeResponse(chunks=split_every(sse(*payloads), size))


HAPPY = (
    {"type": "step", "name": "search"},
    {"type": "intent", "is_blog_request": True},
    {"type": "search_results", "results": [{"title": "Src", "content": "c", "url": "https://s"}]},
    {"type": "delta", "content": "Hello "},
    {"type": "delta", "content": "world"},
)


def test_successful_turn_persists_user_then_assistant_once(store, chat):
    listener = Recorder()
    agent = agent_with(_stream(*HAPPY))
    orch = GenerationOrchestrator(chat, store, agent, listener)

    result = orch.submit("Write about SEO")

    assert result.ok
    assert result.state == sm.IDLE
    assert [(c["content"], c["is_user"]) for c in store.created] == [
        ("Write about SEO", True),
        ("Hello world", False),
    ]
    assert result.assistant_message.content == "Hello world"
    assert result.reply.step_name == "search"
    assert result.reply.is_blog_request is True
    assert [r.title for r in result.reply.search_results] == ["Src"]
    assert listener.states == [sm.AWAITING_USER_PERSIST, sm.STREAMING, sm.FINALIZING, sm.IDLE]
    assert listener.deltas == ["Hello ", "Hello world"]
    assert listener.completed == [result]
    assert [m.content for m in chat.messages] == ["Write about SEO", "Hello world"]
    assert not any(m.id.startswith("temp-") for m in chat.messages)


def test_request_carries_history_query_and_thread(store, chat):
    store.create_message("Earlier question", True, chat.id)
    store.create_message("Earlier answer", False, chat.id)
    load_chat(store, chat)
    agent = agent_with(_stream({"type": "delta", "content": "ok"}))

    GenerationOrchestrator(chat, store, agent).submit("Follow up")

    body = agent._session.calls[0]["json"]
    assert body["query"] == "Follow up"
    assert body["thread_id"] == chat.id
    assert body["messages"] == [
        {"role": "user", "content": "Earlier question"},
        {"role": "assistant", "content": "Earlier answer"},
        {"role": "user", "content": "Follow up"},
    ]


def test_user_message_is_persisted_before_stream_opens(store, chat):
    order = []
    agent = agent_with(_stream({"type": "delta", "content": "x"}))
    real_post = agent._session.post

    def post(url, **kwargs):
        order.append(("open", len(store.created)))
        return real_post(url, **kwargs)

    agent._session.post = post
    GenerationOrchestrator(chat, store, agent).submit("Prompt")
    assert order == [("open", 1)]


def test_partial_output_is_visible_during_stream(store, chat):
    seen = []

    class Peek(GenerationListener):
        def on_delta(self, text):
            seen.append([(m.id.startswith("temp-"), m.content) for m in chat.messages])
            assert len(store.created) == 1

    agent = agent_with(_stream({"type": "delta", "content": "Hel"}, {"type": "delta", "content": "lo"}))
    GenerationOrchestrator(chat, store, agent, Peek()).submit("Prompt")
    assert seen[0][-1] == (True, "Hel")
    assert seen[1][-1] == (True, "Hello")


def test_first_message_retitles_chat(store, chat):
    prompt = "x" * 60
    agent = agent_with(_stream({"type": "delta", "content": "ok"}))
    GenerationOrchestrator(chat, store, agent).submit(prompt)
    assert chat.title == "x" * 50 + "..."
    assert store.list_chats()[0].title == "x" * 50 + "..."


def test_later_messages_keep_title(store, chat):
    agent = agent_with(_stream({"type": "delta", "content": "a"}), _stream({"type": "delta", "content": "b"}))
    orch = GenerationOrchestrator(chat, store, agent)
    orch.submit("First prompt")
    orch.submit("Second prompt")
    assert chat.title == "First prompt"


def test_retitle_failure_does_not_abort_turn(store, chat, monkeypatch):
    def boom(*_args, **_kwargs):
        raise PersistError("title update failed")

    monkeypatch.setattr(store, "update_chat", boom)
    result = GenerationOrchestrator(chat, store, agent_with(_stream({"type": "delta", "content": "ok"}))).submit("Hi")
    assert result.ok
    assert chat.title == "New Chat"


@pytest.mark.parametrize("content", ["", "   ", None])
def test_empty_input_stays_idle_without_network(store, chat, content):
    listener = Recorder()
    agent = agent_with()
    orch = GenerationOrchestrator(chat, store, agent, listener)

    result = orch.submit(content)

    assert isinstance(result.error, ValidationError)
    assert orch.state == sm.IDLE
    assert listener.states == []
    assert isinstance(listener.errors[0], ValidationError)
    assert agent._session.calls == []
    assert store.created == []


def test_connection_drop_mid_stream_errors_without_persisting(store, chat, monkeypatch):
    recorded = []
    monkeypatch.setattr(generation, "record_event", recorded.append)
    chunks = [sse({"type": "delta", "content": "partial"}), requests.exceptions.ChunkedEncodingError("reset")]
    listener = Recorder()
    orch = GenerationOrchestrator(chat, store, agent_with(FakeResponse(chunks=chunks)), listener)

    result = orch.submit("Prompt")

    assert orch.state == sm.ERRORED
    assert isinstance(result.error, StreamReadError)
    assert [c["is_user"] for c in store.created] == [True]
    assert listener.deltas == ["partial"]
    assert isinstance(listener.errors[0], StreamReadError)
    assert orch.accumulator.text == ""
    assert [m.content for m in chat.messages] == ["Prompt"]
    assert result.reply.accumulated_text == ""
    assert recorded[-1].name == "generation_failed"
    assert recorded[-1].properties["error"] == "StreamReadError"


def test_stream_open_failure_keeps_user_message(store, chat):
    orch = GenerationOrchestrator(chat, store, agent_with(FakeResponse(status_code=503)))
    result = orch.submit("Prompt")
    assert isinstance(result.error, StreamOpenError)
    assert orch.state == sm.ERRORED
    assert result.user_message is not None
    assert [m.content for m in store.list_messages(chat.id)] == ["Prompt"]


def test_user_persist_failure_never_opens_stream(store, chat):
    store.fail_on_create = PersistError("store down")
    agent = agent_with()
    orch = GenerationOrchestrator(chat, store, agent)
    result = orch.submit("Prompt")
    assert isinstance(result.error, PersistError)
    assert orch.state == sm.ERRORED
    assert agent._session.calls == []


def test_auth_failure_is_reported(store, chat):
    result = GenerationOrchestrator(chat, store, agent_with(FakeResponse(status_code=401))).submit("Prompt")
    assert isinstance(result.error, AuthError)


def test_assistant_persist_failure_errors(store, chat):
    store.fail_assistant = PersistError("write failed")
    listener = Recorder()
    orch = GenerationOrchestrator(chat, store, agent_with(_stream({"type": "delta", "content": "reply"})), listener)
    result = orch.submit("Prompt")
    assert isinstance(result.error, PersistError)
    assert listener.states[-2:] == [sm.FINALIZING, sm.ERRORED]
    assert [m.content for m in chat.messages] == ["Prompt"]


def test_empty_reply_persists_nothing(store, chat, caplog):
    with caplog.at_level(logging.INFO, logger="blogify.generation"):
        result = GenerationOrchestrator(chat, store, agent_with(_stream({"type": "step", "name": "search"}))).submit("Prompt")
    assert result.ok
    assert result.assistant_message is None
    assert [c["is_user"] for c in store.created] == [True]
    assert any("nothing persisted" in r.getMessage() for r in caplog.records if r.name == "blogify.generation")


def test_failed_turn_keeps_progress_but_drops_partial_text(store, chat):
    chunks = [
        sse({"type": "step", "name": "research"}, {"type": "delta", "content": "half a"}),
        requests.exceptions.ChunkedEncodingError("reset"),
    ]
    result = GenerationOrchestrator(chat, store, agent_with(FakeResponse(chunks=chunks))).submit("Prompt")
    assert isinstance(result.error, StreamReadError)
    assert result.reply.step_name == "research"
    assert result.reply.accumulated_text == ""


def test_retry_after_error_starts_clean(store, chat):
    chunks = [sse({"type": "delta", "content": "stale"}), requests.exceptions.ChunkedEncodingError("reset")]
    agent = agent_with(FakeResponse(chunks=chunks), _stream({"type": "delta", "content": "fresh"}))
    listener = Recorder()
    orch = GenerationOrchestrator(chat, store, agent, listener)

    orch.submit("Prompt")
    result = orch.submit("Prompt again")

    assert result.ok
    assert result.assistant_message.content == "fresh"
    assert sm.IDLE in listener.states[listener.states.index(sm.ERRORED):]


def test_cancel_discards_partial_reply(store, chat):
    resp = _stream({"type": "delta", "content": "a"}, {"type": "delta", "content": "b"}, size=1000)
    holder = {}

    class CancelOnFirstDelta(GenerationListener):
        def on_delta(self, text):
            holder["orch"].cancel()

    orch = GenerationOrchestrator(chat, store, agent_with(resp), CancelOnFirstDelta())
    holder["orch"] = orch
    result = orch.submit("Prompt")

    assert result.cancelled
    assert orch.state == sm.IDLE
    assert resp.closed
    assert [c["is_user"] for c in store.created] == [True]
    assert [m.content for m in chat.messages] == ["Prompt"]


def test_second_submission_while_streaming_is_refused(store, chat):
    holder = {}
    refused = []

    class Resubmit(GenerationListener):
        def on_delta(self, text):
            try:
                holder["orch"].submit("again")
            except GenerationInProgressError as exc:
                refused.append(exc)

    orch = GenerationOrchestrator(chat, store, agent_with(_stream({"type": "delta", "content": "a"})), Resubmit())
    holder["orch"] = orch
    assert orch.submit("Prompt").ok
    assert len(refused) == 1
    assert [c["content"] for c in store.created] == ["Prompt", "a"]


def test_non_streaming_mode_uses_respond_endpoint(store, chat):
    agent = agent_with(FakeResponse(payload={"reply": "Complete reply"}))
    listener = Recorder()
    result = GenerationOrchestrator(chat, store, agent, listener, streaming=False).submit("Prompt")
    assert result.assistant_message.content == "Complete reply"
    assert agent._session.calls[0]["url"].endswith("/agent/respond")
    assert listener.deltas == ["Complete reply"]


def test_reply_without_streaming_raises_on_failure(store, chat):
    with pytest.raises(StreamOpenError):
        reply_without_streaming(chat, store, agent_with(FakeResponse(status_code=500)), "Prompt")
    saved = reply_without_streaming(chat, store, agent_with(FakeResponse(payload={"reply": "ok"})), "Again")
    assert saved.content == "ok"


def test_chat_title_from_prompt():
    assert chat_title_from_prompt("  short  ") == "short"
    assert chat_title_from_prompt("y" * 51).endswith("...")
