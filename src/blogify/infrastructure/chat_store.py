from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from threading import RLock
from typing import Any, Dict, List, Optional, Protocol
import logging
import uuid

import requests
from pydantic import ValidationError as ModelValidationError

from ..core.config import ClientConfig
from ..core.errors import AuthError, PersistError, ValidationError
from ..domain.chat_models import Chat, ChatCreate, ChatUpdate, Message, MessageCreate
from ..security.credentials import BearerCredential
from .http_session import build_session

logger = logging.getLogger("blogify.store")


def _build(model: type, **fields: Any) -> Any:
    try:
        return model(**fields)
    except ModelValidationError as exc:
        raise ValidationError(f"Invalid {model.__name__}: {exc.errors()[0].get('msg')}") from exc


def _parse(model: type, data: Any, action: str) -> Any:
    try:
        return model.model_validate(data)
    except ModelValidationError as exc:
        raise PersistError(f"Failed to {action}: unexpected response shape") from exc


class ChatStore(Protocol):
    def list_chats(self) -> List[Chat]: ...

    def create_chat(self, title: str) -> Chat: ...

    def update_chat(self, chat_id: str, title: str) -> Chat: ...

    def delete_chat(self, chat_id: str) -> None: ...

    def list_messages(self, chat_id: str) -> List[Message]: ...

    def create_message(self, content: str, is_user: bool, chat_id: str) -> Message: ...


class RemoteChatStore:
    """Chat CRUD against the blog service's ``/chat`` endpoints."""

    def __init__(
        self,
        base_url: str,
        credential: BearerCredential,
        timeout: tuple = (3, 30),
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._credential = credential
        self._timeout = timeout
        self._session = session or build_session()

    @classmethod
    def from_config(cls, config: ClientConfig, credential: BearerCredential) -> "RemoteChatStore":
        return cls(
            config.base_url,
            credential,
            timeout=(config.connect_timeout, config.read_timeout),
            session=build_session(config.retries),
        )

    def _request(self, method: str, path: str, action: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        headers = self._credential.headers()
        url = f"{self.base_url}{path}"
        try:
            resp = self._session.request(method, url, json=payload, headers=headers, timeout=self._timeout)
        except requests.exceptions.RequestException as exc:
            logger.warning("Chat store %s failed: %s", action, exc)
            raise PersistError(f"Failed to {action}: {exc}") from exc
        if resp.status_code in (401, 403):
            raise AuthError(f"Not authorized to {action}", status_code=resp.status_code)
        if not resp.ok:
            logger.warning("Chat store %s returned HTTP %s", action, resp.status_code)
            raise PersistError(f"Failed to {action}", status_code=resp.status_code)
        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise PersistError(f"Failed to {action}: invalid JSON response") from exc

    def list_chats(self) -> List[Chat]:
        data = self._request("GET", "/chat/", "fetch chats") or []
        return [_parse(Chat, item, "fetch chats") for item in data]

    def create_chat(self, title: str) -> Chat:
        body = _build(ChatCreate, title=title)
        data = self._request("POST", "/chat/", "create chat", body.model_dump())
        return _parse(Chat, data, "create chat")

    def update_chat(self, chat_id: str, title: str) -> Chat:
        body = _build(ChatUpdate, title=title)
        data = self._request("PUT", f"/chat/{chat_id}", "update chat", body.model_dump())
        return _parse(Chat, data, "update chat")

    def delete_chat(self, chat_id: str) -> None:
        self._request("DELETE", f"/chat/{chat_id}", "delete chat")

    def list_messages(self, chat_id: str) -> List[Message]:
        data = self._request("GET", f"/chat/{chat_id}/messages", "fetch messages") or []
        return [_parse(Message, item, "fetch messages") for item in data]

    def create_message(self, content: str, is_user: bool, chat_id: str) -> Message:
        body = _build(MessageCreate, content=content, is_user=is_user, chat_id=chat_id)
        data = self._request("POST", f"/chat/{chat_id}/messages", "create message", body.model_dump())
        return _parse(Message, data, "create message")


@dataclass
class _Chat:
    id: str
    title: str
    user_id: Optional[str]
    created_at: str
    updated_at: str


@dataclass
class _Message:
    id: str
    content: str
    is_user: bool
    timestamp: str
    chat_id: str


class InMemoryChatStore:
    """Process-local store with the same contract, for offline use and tests."""

    def __init__(self, user_id: Optional[str] = None) -> None:
        self._user_id = user_id
        self._chats: Dict[str, _Chat] = {}
        self._messages: Dict[str, List[_Message]] = {}
        self._lock = RLock()

    def _now_iso(self) -> str:
        return datetime.now(UTC).isoformat().replace("+00:00", "Z")

    def _get(self, chat_id: str) -> _Chat:
        chat = self._chats.get(chat_id)
        if not chat:
            raise PersistError(f"Chat not found: {chat_id}", status_code=404)
        return chat

    def _chat_model(self, chat: _Chat) -> Chat:
        messages = [Message(**m.__dict__) for m in self._messages.get(chat.id, [])]
        return Chat(**chat.__dict__, messages=messages)

    def list_chats(self) -> List[Chat]:
        with self._lock:
            chats = [self._chat_model(c) for c in self._chats.values()]
            # Newest first
            return sorted(chats, key=lambda c: c.updated_at, reverse=True)

    def create_chat(self, title: str) -> Chat:
        body = _build(ChatCreate, title=title)
        with self._lock:
            now = self._now_iso()
            chat = _Chat(
                id=uuid.uuid4().hex,
                title=body.title,
                user_id=self._user_id,
                created_at=now,
                updated_at=now,
            )
            self._chats[chat.id] = chat
            self._messages[chat.id] = []
            return self._chat_model(chat)

    def update_chat(self, chat_id: str, title: str) -> Chat:
        body = _build(ChatUpdate, title=title)
        with self._lock:
            chat = self._get(chat_id)
            chat.title = body.title
            chat.updated_at = self._now_iso()
            return self._chat_model(chat)

    def delete_chat(self, chat_id: str) -> None:
        with self._lock:
            self._get(chat_id)
            del self._chats[chat_id]
            self._messages.pop(chat_id, None)

    def list_messages(self, chat_id: str) -> List[Message]:
        with self._lock:
            self._get(chat_id)
            return [Message(**m.__dict__) for m in self._messages.get(chat_id, [])]

    def create_message(self, content: str, is_user: bool, chat_id: str) -> Message:
        body = _build(MessageCreate, content=content, is_user=is_user, chat_id=chat_id)
        with self._lock:
            chat = self._get(chat_id)
            now = self._now_iso()
            msg = _Message(
                id=uuid.uuid4().hex,
                content=body.content,
                is_user=body.is_user,
                timestamp=now,
                chat_id=chat_id,
            )
            self._messages.setdefault(chat_id, []).append(msg)
            # bump chat updated_at
            chat.updated_at = now
            return Message(**msg.__dict__)


def build_chat_store(config: ClientConfig, credential: BearerCredential) -> ChatStore:
    if config.store_impl == "memory":
        return InMemoryChatStore()
    return RemoteChatStore.from_config(config, credential)
