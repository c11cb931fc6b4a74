"""
Schema bootstrap and incremental migration.

Schema
------
conversations : id INTEGER PK, name TEXT, created_at DATETIME
chat_messages : id INTEGER PK, role TEXT CHECK(user|assistant|system),
                content TEXT, conversation_id INTEGER FK, timestamp DATETIME
settings      : key TEXT PK, value TEXT

``bootstrap()`` runs on every start.  Databases written by the first
release (``chat_messages`` without ``conversation_id``, no ``settings``)
are upgraded in place; nothing is dropped or rewritten.
"""
from __future__ import annotations

import sqlite3
from typing import List

from ollamate.core.exceptions import MigrationError
from ollamate.utils.logging import get_logger
from .database import Database

logger = get_logger(__name__)

GLOBAL_SYSTEM_PROMPT_KEY = "global_system_prompt"
DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."

_CREATE_TABLES = """
CREATE TABLE IF NOT EXISTS conversations (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    name        TEXT    NOT NULL,
    created_at  DATETIME DEFAULT (strftime('%Y-%m-%d %H:%M:%f', 'now'))
);

CREATE TABLE IF NOT EXISTS chat_messages (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    role            TEXT    NOT NULL CHECK(role IN ('user', 'assistant', 'system')),
    content         TEXT    NOT NULL,
    conversation_id INTEGER REFERENCES conversations(id),
    timestamp       DATETIME DEFAULT (strftime('%Y-%m-%d %H:%M:%f', 'now'))
);

CREATE TABLE IF NOT EXISTS settings (
    key    TEXT PRIMARY KEY,
    value  TEXT
);
"""

_ADD_CONVERSATION_COLUMN = (
    "ALTER TABLE chat_messages ADD COLUMN conversation_id INTEGER REFERENCES conversations(id)"
)

_CREATE_INDEX = (
    "CREATE INDEX IF NOT EXISTS idx_chat_messages_conversation_id "
    "ON chat_messages(conversation_id)"
)

_SEED_SYSTEM_PROMPT = "INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?)"


def _is_duplicate_column(exc: sqlite3.Error) -> bool:
    return "duplicate column name" in str(exc).lower()


class SchemaManager:
    """Creates and upgrades the conversations / chat_messages / settings tables."""

    def __init__(self, db: Database) -> None:
        self.db = db

    async def bootstrap(self) -> None:
        """
        Bring the schema up to date.  Idempotent.

        Raises
        ------
        MigrationError
            On any failure except the conversation column already existing.
        """
        await self._step("create tables", self.db.execute_script, _CREATE_TABLES)
        await self._add_conversation_column()
        await self._step("create conversation index", self.db.execute, _CREATE_INDEX)
        await self._step(
            "seed system prompt",
            self.db.execute,
            _SEED_SYSTEM_PROMPT,
            (GLOBAL_SYSTEM_PROMPT_KEY, DEFAULT_SYSTEM_PROMPT),
        )
        logger.info("Schema ready (%s)", self.db.path)

    async def _add_conversation_column(self) -> None:
        try:
            await self.db.execute(_ADD_CONVERSATION_COLUMN)
        except sqlite3.OperationalError as exc:
            if _is_duplicate_column(exc):
                logger.debug("chat_messages.conversation_id already present")
                return
            raise MigrationError(
                f"Could not add conversation_id to chat_messages: {exc}",
                {"step": "add conversation column"},
            ) from exc
        except sqlite3.Error as exc:
            raise MigrationError(
                f"Could not add conversation_id to chat_messages: {exc}",
                {"step": "add conversation column"},
            ) from exc
        logger.info("Migrated chat_messages: added conversation_id column")

    async def _step(self, name: str, func, *args) -> None:
        try:
            await func(*args)
        except sqlite3.Error as exc:
            logger.error("Schema step '%s' failed: %s", name, exc)
            raise MigrationError(f"Schema step '{name}' failed: {exc}", {"step": name}) from exc

    async def columns(self, table: str) -> List[str]:
        """Return the column names of *table* in declaration order."""
        rows = await self.db.fetch_all(f"PRAGMA table_info({table})")
        return [r["name"] for r in rows]
