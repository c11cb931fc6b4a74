"""
Append-only, conversation-scoped chat log.

Schema
------
chat_messages : id INTEGER PK, role TEXT, content TEXT,
                conversation_id INTEGER FK (NULL for legacy rows),
                timestamp DATETIME

Rows are never updated.  Reads come back oldest first, which is the
order the inference engine expects.
"""
from __future__ import annotations

import sqlite3
from typing import List, Union

from ollamate.core.exceptions import InvalidRoleError, StoreReadError, StoreWriteError
from ollamate.core.protocol import Message, Role
from ollamate.utils.logging import get_logger
from .database import Database

logger = get_logger(__name__)

_COLUMNS = "id, conversation_id, role, content, timestamp"

# timestamp ties (legacy second-resolution rows) fall back to insertion order
_CHRONOLOGICAL = "ORDER BY timestamp ASC, id ASC"


def _decode(row: sqlite3.Row) -> Message:
    try:
        role = Role.parse(row["role"])
    except InvalidRoleError as exc:
        raise StoreReadError(
            f"Message {row['id']} has unrecognised role {row['role']!r}",
            {"message_id": row["id"], "role": row["role"]},
        ) from exc
    return Message(
        id=row["id"],
        conversation_id=row["conversation_id"],
        role=role,
        content=row["content"],
        timestamp=row["timestamp"],
    )


class MessageStore:
    """Write and read ``chat_messages`` rows."""

    def __init__(self, db: Database) -> None:
        self.db = db

    async def append(self, conversation_id: int, role: Union[Role, str], content: str) -> int:
        """
        Persist one message and return its id.

        Raises
        ------
        InvalidRoleError
            If *role* is not user / assistant / system.  Nothing is written.
        StoreWriteError
            If the insert fails.
        """
        role = Role.parse(role)
        try:
            message_id = await self.db.execute(
                "INSERT INTO chat_messages (conversation_id, role, content) VALUES (?, ?, ?)",
                (conversation_id, role.value, content),
            )
        except sqlite3.Error as exc:
            raise StoreWriteError(
                f"Failed to save {role.value} message: {exc}",
                {"conversation_id": conversation_id, "role": role.value},
            ) from exc
        logger.debug("Appended %s message %d to conversation %d", role.value, message_id, conversation_id)
        return message_id

    async def list(self, conversation_id: int) -> List[Message]:
        """Return the conversation's messages oldest first (empty list if none)."""
        try:
            rows = await self.db.fetch_all(
                f"SELECT {_COLUMNS} FROM chat_messages WHERE conversation_id = ? {_CHRONOLOGICAL}",
                (conversation_id,),
            )
        except sqlite3.Error as exc:
            raise StoreReadError(
                f"Failed to load history for conversation {conversation_id}: {exc}",
                {"conversation_id": conversation_id},
            ) from exc
        return [_decode(r) for r in rows]

    async def list_unscoped(self) -> List[Message]:
        """Return messages written before conversations existed (``conversation_id IS NULL``)."""
        try:
            rows = await self.db.fetch_all(
                f"SELECT {_COLUMNS} FROM chat_messages WHERE conversation_id IS NULL {_CHRONOLOGICAL}"
            )
        except sqlite3.Error as exc:
            raise StoreReadError(f"Failed to load legacy messages: {exc}") from exc
        return [_decode(r) for r in rows]

    async def count(self, conversation_id: int) -> int:
        try:
            row = await self.db.fetch_one(
                "SELECT COUNT(*) AS cnt FROM chat_messages WHERE conversation_id = ?",
                (conversation_id,),
            )
        except sqlite3.Error as exc:
            raise StoreReadError(
                f"Failed to count messages for conversation {conversation_id}: {exc}",
                {"conversation_id": conversation_id},
            ) from exc
        return row["cnt"] if row else 0
