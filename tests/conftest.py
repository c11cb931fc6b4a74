"""
Shared fixtures for the Ollamate test suite.

Every test gets its own SQLite file under tmp_path; the inference engine
and model registry are replaced by in-process fakes so no Ollama daemon
is needed.
"""
from __future__ import annotations

import pytest
import pytest_asyncio

from fakes import FakeEngine


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "chat_history.db"


@pytest_asyncio.fixture
async def db(db_path):
    from ollamate.memory import initialize_store
    handle = await initialize_store(db_path)
    yield handle
    await handle.close()


@pytest.fixture
def conversations(db):
    from ollamate.memory import ConversationStore
    return ConversationStore(db)


@pytest.fixture
def messages(db):
    from ollamate.memory import MessageStore
    return MessageStore(db)


@pytest.fixture
def settings(db):
    from ollamate.memory import SettingsStore
    return SettingsStore(db)


@pytest.fixture
def assembler(settings, messages):
    from ollamate.core.context import ContextAssembler
    return ContextAssembler(settings, messages)


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def controller(messages, assembler, engine):
    from ollamate.core.controller import OptimisticStateController
    return OptimisticStateController(
        messages=messages,
        assembler=assembler,
        engine=engine,
        model="llama3.2:latest",
    )


class Sabotage:
    """Installs triggers that make writes abort, as a full disk or locked file would."""

    def __init__(self, db):
        self.db = db

    async def fail_inserts(self, table: str) -> None:
        await self.db.execute(
            f"CREATE TRIGGER fail_insert_{table} BEFORE INSERT ON {table} "
            "BEGIN SELECT RAISE(ABORT, 'simulated write failure'); END"
        )

    async def fail_deletes(self, table: str) -> None:
        await self.db.execute(
            f"CREATE TRIGGER fail_delete_{table} BEFORE DELETE ON {table} "
            "BEGIN SELECT RAISE(ABORT, 'simulated delete failure'); END"
        )


@pytest.fixture
def sabotage(db):
    return Sabotage(db)
