"""
Key/value settings persisted in the ``settings`` table.

Only one key is in use today: the global system prompt that opens every
conversation's context.
"""
from __future__ import annotations

import sqlite3
from typing import Optional

from ollamate.core.exceptions import StoreReadError, StoreWriteError
from ollamate.utils.logging import get_logger
from .database import Database
from .schema import DEFAULT_SYSTEM_PROMPT, GLOBAL_SYSTEM_PROMPT_KEY

logger = get_logger(__name__)

# Returned by get() when the key has no row.
DEFAULTS = {
    GLOBAL_SYSTEM_PROMPT_KEY: DEFAULT_SYSTEM_PROMPT,
}


class SettingsStore:
    """Read and upsert settings rows."""

    def __init__(self, db: Database) -> None:
        self.db = db

    async def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Return the stored value for *key*, or its built-in default when there is no row."""
        try:
            row = await self.db.fetch_one("SELECT value FROM settings WHERE key = ?", (key,))
        except sqlite3.Error as exc:
            raise StoreReadError(f"Failed to load setting '{key}': {exc}", {"key": key}) from exc
        if row is None:
            return DEFAULTS.get(key, default)
        return row["value"]

    async def set(self, key: str, value: str) -> None:
        """Insert or replace *key*.  Last writer wins."""
        try:
            await self.db.execute(
                "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)", (key, value)
            )
        except sqlite3.Error as exc:
            raise StoreWriteError(f"Failed to save setting '{key}': {exc}", {"key": key}) from exc
        logger.info("Saved setting %s (%d chars)", key, len(value))

    async def get_system_prompt(self) -> str:
        return await self.get(GLOBAL_SYSTEM_PROMPT_KEY)

    async def set_system_prompt(self, value: str) -> None:
        await self.set(GLOBAL_SYSTEM_PROMPT_KEY, value)
