"""
Process-scoped SQLite handle.

One connection is opened per process and every statement runs on a single
worker thread, so SQLite only ever sees one caller at a time.  The stores
receive the handle by reference; there is no module-level connection.

Usage
-----
    db = await open_database(Path("data/chat_history_persistent.db"))
    rows = await db.fetch_all("SELECT * FROM conversations")
    await db.close()
"""
from __future__ import annotations

import asyncio
import functools
import sqlite3
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence, TypeVar, Union

from ollamate.core.exceptions import StoreUnavailableError
from ollamate.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

Params = Union[Sequence[Any], dict]


class Database:
    """Async facade over one autocommit ``sqlite3.Connection``."""

    def __init__(self, conn: sqlite3.Connection, path: Union[Path, str], executor: ThreadPoolExecutor) -> None:
        self._conn: Optional[sqlite3.Connection] = conn
        self._executor = executor
        self.path = path

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def run(self, func: Callable[..., T], /, *args: Any, **kwargs: Any) -> T:
        """Run ``func(conn, *args, **kwargs)`` on the worker thread."""
        conn = self._conn
        if conn is None:
            raise StoreUnavailableError("Database is closed", {"path": str(self.path)})
        loop = asyncio.get_running_loop()
        bound = functools.partial(func, conn, *args, **kwargs)
        return await loop.run_in_executor(self._executor, bound)

    # ── statements ────────────────────────────────────────────────────────────

    async def execute(self, sql: str, params: Params = ()) -> int:
        """Execute one statement; return ``lastrowid`` for inserts, else the row count."""
        def _execute(conn: sqlite3.Connection) -> int:
            cur = conn.execute(sql, params)
            if cur.lastrowid and sql.lstrip().upper().startswith("INSERT"):
                return cur.lastrowid
            return cur.rowcount
        return await self.run(_execute)

    async def execute_script(self, script: str) -> None:
        await self.run(lambda conn: conn.executescript(script))

    async def fetch_all(self, sql: str, params: Params = ()) -> List[sqlite3.Row]:
        return await self.run(lambda conn: conn.execute(sql, params).fetchall())

    async def fetch_one(self, sql: str, params: Params = ()) -> Optional[sqlite3.Row]:
        return await self.run(lambda conn: conn.execute(sql, params).fetchone())

    # ── lifecycle ─────────────────────────────────────────────────────────────

    async def close(self) -> None:
        """Close the connection.  Safe to call more than once."""
        conn, self._conn = self._conn, None
        if conn is None:
            return
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(self._executor, conn.close)
        self._executor.shutdown(wait=False)
        logger.info("Closed database %s", self.path)


def _connect(path: Union[Path, str]) -> sqlite3.Connection:
    # isolation_level=None: autocommit, every statement is its own unit
    conn = sqlite3.connect(str(path), isolation_level=None, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    if str(path) != ":memory:":
        conn.execute("PRAGMA journal_mode=WAL")
    return conn


async def open_database(path: Union[Path, str]) -> Database:
    """
    Open (creating if needed) the SQLite database at *path*.

    Raises
    ------
    StoreUnavailableError
        If the parent directory cannot be created or SQLite refuses the file.
    """
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ollamate-db")
    loop = asyncio.get_running_loop()
    try:
        if str(path) != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        conn = await loop.run_in_executor(executor, _connect, path)
    except (sqlite3.Error, OSError) as exc:
        executor.shutdown(wait=False)
        logger.error("Could not open database %s: %s", path, exc)
        raise StoreUnavailableError(
            f"Could not open database: {exc}", {"path": str(path)}
        ) from exc
    logger.info("Opened database %s", path)
    return Database(conn, path, executor)
