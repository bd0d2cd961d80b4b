from __future__ import annotations

from typing import List, Literal, Optional
from pydantic import BaseModel, Field


class Message(BaseModel):
    id: str
    content: str
    is_user: bool
    timestamp: str
    chat_id: str

    @property
    def role(self) -> "Role":
        return "user" if self.is_user else "assistant"


class Chat(BaseModel):
    id: str
    title: str
    user_id: Optional[str] = None
    created_at: str
    updated_at: str
    messages: List[Message] = Field(default_factory=list)


class ChatCreate(BaseModel):
    title: str = Field(min_length=1)


class ChatUpdate(BaseModel):
    title: str = Field(min_length=1)


class MessageCreate(BaseModel):
    content: str = Field(min_length=1)
    is_user: bool
    chat_id: str = Field(min_length=1)


Role = Literal["user", "assistant"]


class AgentTurn(BaseModel):
    role: Role
    content: str


class StreamRequest(BaseModel):
    query: Optional[str] = None
    messages: Optional[List[AgentTurn]] = None
    thread_id: Optional[str] = None


class AgentReply(BaseModel):
    reply: str


def to_agent_turns(messages: List[Message]) -> List[AgentTurn]:
    return [AgentTurn(role=m.role, content=m.content) for m in messages]
