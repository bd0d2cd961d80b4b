"""One user turn: persist the prompt, stream the reply, persist the reply.

The orchestrator is the only layer that turns failures into user-visible
reports. Listener hooks fire on every state transition and every delta so a
renderer can show partial output while the stream is still open.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Optional

import logging
import time
import uuid

from ..core.errors import (
    AuthError,
    BlogifyError,
    GenerationInProgressError,
    PersistError,
    StreamOpenError,
    StreamReadError,
    ValidationError,
)
from ..core.state_machine import (
    AWAITING_USER_PERSIST,
    ERRORED,
    FINALIZING,
    IDLE,
    STREAMING,
    is_busy,
    is_valid_transition,
)
from ..domain.chat_models import Chat, Message, StreamRequest, to_agent_turns
from ..domain.stream_events import DeltaEvent, StreamEvent
from ..infrastructure.chat_store import ChatStore
from ..observability.metrics import count_event, observe_generation
from .agent_client import AgentClient, AgentStream
from .reply_accumulator import ReplyAccumulator, ReplyState
from .telemetry_sink import TelemetryEvent, record_event

logger = logging.getLogger("blogify.generation")

TITLE_MAX_CHARS = 50
_TURN_ERRORS = (AuthError, StreamOpenError, StreamReadError, PersistError)


class GenerationListener:
    """Override the hooks you care about; all default to no-ops."""

    def on_state(self, old: str, new: str) -> None:
        pass

    def on_event(self, event: StreamEvent) -> None:
        pass

    def on_delta(self, text: str) -> None:
        pass

    def on_error(self, error: BlogifyError) -> None:
        pass

    def on_complete(self, result: "GenerationResult") -> None:
        pass


@dataclass
class GenerationResult:
    state: str
    user_message: Optional[Message] = None
    assistant_message: Optional[Message] = None
    reply: ReplyState = field(default_factory=ReplyState)
    error: Optional[BlogifyError] = None
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and not self.cancelled


def chat_title_from_prompt(content: str) -> str:
    title = content.strip()
    if len(title) > TITLE_MAX_CHARS:
        return title[:TITLE_MAX_CHARS] + "..."
    return title


def load_chat(store: ChatStore, chat: Chat) -> Chat:
    """Refresh the cached message list of ``chat`` from the store."""
    chat.messages = store.list_messages(chat.id)
    return chat


class GenerationOrchestrator:
    def __init__(
        self,
        chat: Chat,
        store: ChatStore,
        agent: AgentClient,
        listener: Optional[GenerationListener] = None,
        *,
        streaming: bool = True,
    ) -> None:
        self.chat = chat
        self.store = store
        self.agent = agent
        self.listener = listener or GenerationListener()
        self.streaming = streaming
        self.accumulator = ReplyAccumulator()
        self.state = IDLE
        self._stream: Optional[AgentStream] = None
        self._provisional: Optional[Message] = None
        self._cancelled = False

    @property
    def busy(self) -> bool:
        return is_busy(self.state)

    def _transition(self, target: str) -> None:
        if not is_valid_transition(self.state, target):
            raise RuntimeError(f"Invalid generation transition {self.state} -> {target}")
        old = self.state
        self.state = target
        logger.debug("Generation state %s -> %s (chat=%s)", old, target, self.chat.id)
        self.listener.on_state(old, target)

    def cancel(self) -> None:
        """Abort the in-flight stream; the partial reply is discarded."""
        if self.state != STREAMING:
            return
        self._cancelled = True
        stream = self._stream
        if stream is not None:
            stream.close()

    def submit(self, content: str) -> GenerationResult:
        if self.busy:
            raise GenerationInProgressError(f"A reply is already being generated for chat {self.chat.id}")
        if not (content or "").strip() or not self.chat.id:
            error = ValidationError("Message content is required")
            self.listener.on_error(error)
            return GenerationResult(state=self.state, error=error)

        if self.state == ERRORED:
            self._transition(IDLE)
        self.accumulator.reset()
        self._cancelled = False
        started = time.perf_counter()
        user_message: Optional[Message] = None

        self._transition(AWAITING_USER_PERSIST)
        try:
            is_first_message = not self.chat.messages
            history = list(self.chat.messages)
            user_message = self.store.create_message(content, True, self.chat.id)
            self.chat.messages.append(user_message)
            if is_first_message:
                self._retitle(content)

            self._transition(STREAMING)
            turns = to_agent_turns(history + [user_message])
            if self.streaming:
                self._consume_stream(StreamRequest(query=content, messages=turns, thread_id=self.chat.id))
            else:
                self._apply(DeltaEvent(content=self.agent.respond(turns)))

            if self._cancelled:
                return self._abandon(user_message, started)

            self._transition(FINALIZING)
            assistant_message = self._finalize()
        except _TURN_ERRORS as exc:
            return self._fail(exc, user_message, started)
        except BaseException:
            self._drop_partial()
            self.accumulator.reset()
            self._transition(ERRORED)
            raise

        result = GenerationResult(
            state=IDLE,
            user_message=user_message,
            assistant_message=assistant_message,
            reply=self._snapshot(),
        )
        self._transition(IDLE)
        observe_generation("completed", time.perf_counter() - started)
        record_event(
            TelemetryEvent(
                name="generation_completed",
                chat_id=self.chat.id,
                properties={
                    "chars": len(self.accumulator.text),
                    "persisted": assistant_message is not None,
                    "is_blog_request": self.accumulator.state.is_blog_request,
                },
            )
        )
        self.listener.on_complete(result)
        return result

    def _retitle(self, content: str) -> None:
        title = chat_title_from_prompt(content)
        try:
            updated = self.store.update_chat(self.chat.id, title)
        except BlogifyError as exc:
            logger.warning("Could not retitle chat %s: %s", self.chat.id, exc)
            return
        self.chat.title = updated.title
        self.chat.updated_at = updated.updated_at

    def _consume_stream(self, request: StreamRequest) -> None:
        stream = self.agent.open_stream(request)
        self._stream = stream
        try:
            for event in stream.events():
                self._apply(event)
                if self._cancelled:
                    break
        except StreamReadError:
            if not self._cancelled:
                raise
        finally:
            self._stream = None
            stream.close()

    def _apply(self, event: StreamEvent) -> None:
        count_event(event.kind)
        changed = self.accumulator.apply(event)
        self.listener.on_event(event)
        if changed:
            self._show_partial(self.accumulator.text)
            self.listener.on_delta(self.accumulator.text)

    def _show_partial(self, text: str) -> None:
        if self._provisional is None:
            self._provisional = Message(
                id=f"temp-{uuid.uuid4().hex}",
                content=text,
                is_user=False,
                timestamp=datetime.now(UTC).isoformat().replace("+00:00", "Z"),
                chat_id=self.chat.id,
            )
            self.chat.messages.append(self._provisional)
        else:
            self._provisional.content = text

    def _drop_partial(self) -> None:
        if self._provisional is None:
            return
        self.chat.messages = [m for m in self.chat.messages if m is not self._provisional]
        self._provisional = None

    def _finalize(self) -> Optional[Message]:
        self._drop_partial()
        text = self.accumulator.text
        if not text:
            logger.info("Empty reply for chat %s; nothing persisted", self.chat.id)
            return None
        saved = self.store.create_message(text, False, self.chat.id)
        self.chat.messages.append(saved)
        return saved

    def _snapshot(self) -> ReplyState:
        state = self.accumulator.state
        return replace(state, search_results=list(state.search_results))

    def _abandon(self, user_message: Optional[Message], started: float) -> GenerationResult:
        self._drop_partial()
        self.accumulator.reset()
        self._transition(IDLE)
        observe_generation("cancelled", time.perf_counter() - started)
        record_event(TelemetryEvent(name="generation_cancelled", chat_id=self.chat.id))
        result = GenerationResult(state=IDLE, user_message=user_message, cancelled=True)
        self.listener.on_complete(result)
        return result

    def _fail(self, error: BlogifyError, user_message: Optional[Message], started: float) -> GenerationResult:
        logger.warning("Generation failed for chat %s in state %s: %s", self.chat.id, self.state, error)
        self._drop_partial()
        reply = replace(self._snapshot(), accumulated_text="")
        self.accumulator.reset()
        self._transition(ERRORED)
        observe_generation("errored", time.perf_counter() - started)
        record_event(
            TelemetryEvent(
                name="generation_failed",
                chat_id=self.chat.id,
                properties={"error": type(error).__name__, "status_code": error.status_code},
            )
        )
        self.listener.on_error(error)
        return GenerationResult(state=ERRORED, user_message=user_message, reply=reply, error=error)


def reply_without_streaming(
    chat: Chat,
    store: ChatStore,
    agent: AgentClient,
    content: str,
) -> Message:
    """Ask the non-streaming endpoint and store its reply; raises on failure."""
    result = GenerationOrchestrator(chat, store, agent, streaming=False).submit(content)
    if result.error is not None:
        raise result.error
    if result.assistant_message is None:
        raise PersistError("Agent returned an empty reply")
    return result.assistant_message
