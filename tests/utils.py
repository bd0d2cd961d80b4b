from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Optional, Union

from src.blogify.infrastructure.chat_store import InMemoryChatStore
from src.blogify.security.credentials import BearerCredential
from src.blogify.services.agent_client import AgentClient

BASE_URL = "http://blog.test"


def sse(*payloads: Union[Dict[str, Any], str]) -> bytes:
    """Encode payloads as ``data:`` frames; strings are sent verbatim."""
    frames = []
    for payload in payloads:
        body = payload if isinstance(payload, str) else json.dumps(payload)
        frames.append(f"data: {body}\n\n")
    return "".join(frames).encode("utf-8")


def split_every(data: bytes, size: int) -> List[bytes]:
    return [data[i : i + size] for i in range(0, len(data), size)]


class FakeResponse:
    def __init__(
        self,
        status_code: int = 200,
        payload: Any = None,
        chunks: Optional[Iterable[Union[bytes, Exception]]] = None,
    ) -> None:
        self.status_code = status_code
        self._payload = payload
        self._chunks = list(chunks or [])
        self.closed = False
        self.content = b"" if payload is None else json.dumps(payload).encode("utf-8")

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("no body")
        return self._payload

    def iter_content(self, chunk_size=None):
        for chunk in self._chunks:
            if self.closed:
                return
            if isinstance(chunk, Exception):
                raise chunk
            yield chunk

    def close(self) -> None:
        self.closed = True


class FakeSession:
    """Records calls and replays queued responses in order."""

    def __init__(self, *responses: Union[FakeResponse, Exception]) -> None:
        self.responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    def _next(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"method": method, "url": url, **kwargs})
        if not self.responses:
            raise AssertionError(f"unexpected {method} {url}")
        resp = self.responses.pop(0)
        if isinstance(resp, Exception):
            raise resp
        return resp

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        return self._next(method, url, **kwargs)

    def post(self, url: str, **kwargs: Any) -> FakeResponse:
        return self._next("POST", url, **kwargs)


class RecordingStore(InMemoryChatStore):
    """In-memory store that records writes and can fail on demand."""

    def __init__(self) -> None:
        super().__init__(user_id="user-1")
        self.created: List[Dict[str, Any]] = []
        self.fail_on_create: Optional[Exception] = None
        self.fail_assistant: Optional[Exception] = None

    def create_message(self, content: str, is_user: bool, chat_id: str):
        if self.fail_on_create is not None:
            raise self.fail_on_create
        if not is_user and self.fail_assistant is not None:
            raise self.fail_assistant
        self.created.append({"content": content, "is_user": is_user, "chat_id": chat_id})
        return super().create_message(content, is_user, chat_id)


def agent_with(*responses: Union[FakeResponse, Exception]) -> AgentClient:
    return AgentClient(BASE_URL, BearerCredential("test-token"), session=FakeSession(*responses))
