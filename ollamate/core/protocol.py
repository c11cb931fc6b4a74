"""
Typed records shared between the stores, the context assembler, the
controller and the Ollama adapters.

Rows coming out of SQLite are decoded into these models at the store
boundary; nothing above the stores sees a raw ``sqlite3.Row``.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from .exceptions import InvalidRoleError


class Role(str, Enum):
    """Author of a chat message."""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"

    @classmethod
    def parse(cls, value: Union["Role", str]) -> "Role":
        """Return the matching role or raise :class:`InvalidRoleError`. No coercion."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidRoleError(value) from None


def _parse_sqlite_datetime(value: Any) -> Any:
    # SQLite hands back "YYYY-MM-DD HH:MM:SS[.fff]" text for DATETIME columns
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    return value


class Conversation(BaseModel):
    """A named container scoping an ordered set of messages."""
    id: int = Field(description="Store-assigned identifier")
    name: str = Field(description="Conversation title")
    created_at: datetime = Field(description="When the conversation was created")

    model_config = {"frozen": True}

    parse_created_at = field_validator("created_at", mode="before")(_parse_sqlite_datetime)


class Message(BaseModel):
    """One persisted chat message."""
    id: int = Field(description="Store-assigned identifier")
    conversation_id: Optional[int] = Field(
        None, description="Owning conversation (None for rows predating conversations)"
    )
    role: Role = Field(description="Message author")
    content: str = Field(description="Message text")
    timestamp: datetime = Field(description="When the message was stored")

    model_config = {"frozen": True}

    parse_timestamp = field_validator("timestamp", mode="before")(_parse_sqlite_datetime)

    def to_entry(self) -> "ChatEntry":
        return ChatEntry(role=self.role, content=self.content)


class ChatEntry(BaseModel):
    """A (role, content) pair: one element of the inference context or the UI mirror."""
    role: Role
    content: str

    model_config = {"frozen": True}

    @classmethod
    def user(cls, content: str) -> "ChatEntry":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> "ChatEntry":
        return cls(role=Role.ASSISTANT, content=content)

    @classmethod
    def system(cls, content: str) -> "ChatEntry":
        return cls(role=Role.SYSTEM, content=content)

    def as_payload(self) -> Dict[str, str]:
        return {"role": self.role.value, "content": self.content}


def to_payload(entries: List[ChatEntry]) -> List[Dict[str, str]]:
    """Render entries as the ``[{"role": ..., "content": ...}]`` list chat APIs expect."""
    return [e.as_payload() for e in entries]


class LocalModel(BaseModel):
    """A model pulled into the local Ollama daemon."""
    name: str = Field(description="Model tag, e.g. 'llama3.2:latest'")
    modified_at: Optional[str] = Field(None, description="Last time the model was pulled or modified (ISO 8601)")
    size: int = Field(0, ge=0, description="Size on disk in bytes")

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "example": {
                "name": "llama3.2:latest",
                "modified_at": "2025-01-12T09:31:44.112Z",
                "size": 2019393189,
            }
        },
    }
