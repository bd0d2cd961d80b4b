from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Optional

import requests

from ..core.config import ClientConfig
from ..core.errors import AuthError, StreamOpenError, StreamReadError
from ..domain.chat_models import AgentReply, AgentTurn, StreamRequest
from ..domain.stream_events import StreamEvent
from ..infrastructure.http_session import build_session
from ..security.credentials import BearerCredential
from .event_classifier import iter_events
from .sse_decoder import iter_frames

LOG = logging.getLogger("blogify.stream")


class AgentStream:
    """An open ``/agent/stream`` response.

    Iterate ``events()`` to consume it; ``close()`` releases the connection
    and may be called at any time, including from inside the read loop.
    """

    def __init__(self, response: requests.Response) -> None:
        self._response = response
        self.closed = False

    def frames(self) -> Iterator[str]:
        return iter_frames(self._response.iter_content(chunk_size=None))

    def events(self) -> Iterator[StreamEvent]:
        return iter_events(self.frames())

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            self._response.close()
        except Exception as exc:  # pragma: no cover - close is best effort
            LOG.debug("agent_stream_close_failed", extra={"err": str(exc)})

    def __enter__(self) -> "AgentStream":
        return self

    def __exit__(self, *_exc: Any) -> None:
        self.close()

    def __iter__(self) -> Iterator[StreamEvent]:
        return self.events()


class AgentClient:
    def __init__(
        self,
        base_url: str,
        credential: BearerCredential,
        timeout: tuple = (3, 60),
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._credential = credential
        self._timeout = timeout
        self._session = session or build_session()

    @classmethod
    def from_config(cls, config: ClientConfig, credential: BearerCredential) -> "AgentClient":
        return cls(
            config.base_url,
            credential,
            timeout=config.timeout,
            session=build_session(config.retries),
        )

    def open_stream(self, request: StreamRequest) -> AgentStream:
        headers = self._credential.headers()
        headers["Accept"] = "text/event-stream"
        payload = request.model_dump(exclude_none=True)
        LOG.debug(
            "agent_stream_open",
            extra={"base_url": self.base_url, "turns": len(request.messages or []), "thread_id": request.thread_id},
        )
        try:
            resp = self._session.post(
                f"{self.base_url}/agent/stream",
                json=payload,
                headers=headers,
                timeout=self._timeout,
                stream=True,
            )
        except requests.exceptions.RequestException as exc:
            LOG.warning("stream_open_failed", extra={"err": str(exc)})
            raise StreamOpenError(f"Failed to open stream: {exc}") from exc
        if resp.status_code in (401, 403):
            resp.close()
            raise AuthError("Not authorized to call the agent", status_code=resp.status_code)
        if not resp.ok:
            LOG.warning("stream_open_failed", extra={"status": resp.status_code})
            resp.close()
            raise StreamOpenError(f"Failed to open stream: HTTP {resp.status_code}", status_code=resp.status_code)
        return AgentStream(resp)

    def respond(self, messages: List[AgentTurn]) -> str:
        """Non-streaming convenience call: full history in, finished reply out."""
        headers = self._credential.headers()
        payload: Dict[str, Any] = {"messages": [m.model_dump() for m in messages]}
        try:
            resp = self._session.post(
                f"{self.base_url}/agent/respond",
                json=payload,
                headers=headers,
                timeout=self._timeout,
            )
        except requests.exceptions.RequestException as exc:
            LOG.warning("agent_respond_failed", extra={"err": str(exc)})
            raise StreamOpenError(f"Failed to call agent: {exc}") from exc
        if resp.status_code in (401, 403):
            raise AuthError("Not authorized to call the agent", status_code=resp.status_code)
        if not resp.ok:
            raise StreamOpenError(f"Failed to call agent: HTTP {resp.status_code}", status_code=resp.status_code)
        try:
            return AgentReply.model_validate(resp.json()).reply
        except ValueError as exc:
            raise StreamReadError("Agent returned an invalid reply") from exc
