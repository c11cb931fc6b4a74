"""Persistent conversation memory backed by SQLite."""
from pathlib import Path
from typing import Union

from ollamate.core.exceptions import MigrationError, StoreUnavailableError
from ollamate.utils.logging import get_logger
from .conversation_store import ConversationStore
from .database import Database, open_database
from .message_store import MessageStore
from .schema import DEFAULT_SYSTEM_PROMPT, GLOBAL_SYSTEM_PROMPT_KEY, SchemaManager
from .settings_store import SettingsStore

logger = get_logger(__name__)


async def initialize_store(path: Union[Path, str]) -> Database:
    """
    Open the database and bring its schema up to date.

    Call once per process before touching any store.  On failure the handle
    is closed and the error propagates; calling again retries from scratch.

    Raises
    ------
    StoreUnavailableError
        The file could not be opened.
    MigrationError
        The schema could not be bootstrapped.
    """
    db = await open_database(path)
    try:
        await SchemaManager(db).bootstrap()
    except (MigrationError, StoreUnavailableError):
        await db.close()
        raise
    return db


__all__ = [
    "ConversationStore",
    "Database",
    "DEFAULT_SYSTEM_PROMPT",
    "GLOBAL_SYSTEM_PROMPT_KEY",
    "MessageStore",
    "SchemaManager",
    "SettingsStore",
    "initialize_store",
    "open_database",
]
