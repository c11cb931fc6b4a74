"""
SQLite-backed conversation containers.

Schema
------
conversations : id INTEGER PK, name TEXT, created_at DATETIME

Usage
-----
    store = ConversationStore(db)
    conv = await store.create("Trip planning")
    await store.list()               # newest first
    await store.delete(conv.id)      # removes its chat_messages too

Both ``create`` (insert, then look up the newest row) and ``delete``
(messages first, then the conversation) are two separate statements and
assume a single writer.
"""
from __future__ import annotations

import sqlite3
from typing import List, Optional

from ollamate.core.exceptions import (
    ConversationNotFoundError,
    PartialDeleteError,
    StoreReadError,
    StoreWriteError,
)
from ollamate.core.protocol import Conversation
from ollamate.utils.logging import get_logger
from .database import Database

logger = get_logger(__name__)


class ConversationStore:
    """CRUD over the ``conversations`` table."""

    def __init__(self, db: Database) -> None:
        self.db = db

    async def create(self, name: str) -> Conversation:
        """Insert a conversation and return it as stored."""
        try:
            await self.db.execute("INSERT INTO conversations (name) VALUES (?)", (name,))
        except sqlite3.Error as exc:
            raise StoreWriteError(f"Failed to create conversation: {exc}") from exc

        try:
            row = await self.db.fetch_one(
                "SELECT id, name, created_at FROM conversations "
                "ORDER BY created_at DESC, id DESC LIMIT 1"
            )
        except sqlite3.Error as exc:
            raise StoreReadError(f"Failed to resolve new conversation: {exc}") from exc
        if row is None:
            raise StoreReadError("Conversation was inserted but could not be read back")

        conv = Conversation(**dict(row))
        logger.info("Created conversation %d (%s)", conv.id, conv.name)
        return conv

    async def list(self) -> List[Conversation]:
        """Return every conversation, most recently created first."""
        try:
            rows = await self.db.fetch_all(
                "SELECT id, name, created_at FROM conversations "
                "ORDER BY created_at DESC, id DESC"
            )
        except sqlite3.Error as exc:
            raise StoreReadError(f"Failed to list conversations: {exc}") from exc
        return [Conversation(**dict(r)) for r in rows]

    async def get(self, conversation_id: int) -> Optional[Conversation]:
        try:
            row = await self.db.fetch_one(
                "SELECT id, name, created_at FROM conversations WHERE id = ?",
                (conversation_id,),
            )
        except sqlite3.Error as exc:
            raise StoreReadError(
                f"Failed to load conversation {conversation_id}: {exc}",
                {"conversation_id": conversation_id},
            ) from exc
        return Conversation(**dict(row)) if row else None

    async def rename(self, conversation_id: int, name: str) -> None:
        try:
            updated = await self.db.execute(
                "UPDATE conversations SET name = ? WHERE id = ?", (name, conversation_id)
            )
        except sqlite3.Error as exc:
            raise StoreWriteError(
                f"Failed to rename conversation {conversation_id}: {exc}",
                {"conversation_id": conversation_id},
            ) from exc
        if updated == 0:
            raise ConversationNotFoundError(conversation_id)

    async def delete(self, conversation_id: int) -> bool:
        """
        Delete the conversation's messages, then the conversation.

        Returns
        -------
        bool
            True if a conversation row was removed, False if none matched.

        Raises
        ------
        StoreWriteError
            If the messages could not be deleted (nothing changed).
        PartialDeleteError
            If the messages are gone but the conversation row could not be
            removed.  Not compensated.
        """
        try:
            removed = await self.db.execute(
                "DELETE FROM chat_messages WHERE conversation_id = ?", (conversation_id,)
            )
        except sqlite3.Error as exc:
            raise StoreWriteError(
                f"Failed to delete messages of conversation {conversation_id}: {exc}",
                {"conversation_id": conversation_id},
            ) from exc

        try:
            deleted = await self.db.execute(
                "DELETE FROM conversations WHERE id = ?", (conversation_id,)
            )
        except sqlite3.Error as exc:
            logger.error(
                "Conversation %d lost %d messages but its row survived: %s",
                conversation_id, removed, exc,
            )
            raise PartialDeleteError(conversation_id, str(exc)) from exc

        logger.info("Deleted conversation %d and %d messages", conversation_id, removed)
        return deleted > 0
