"""
In-memory view of the active conversation, kept ahead of the database.

submit() shows the user's message immediately, asks the model, and then:

- on a reply:   appends it to the view, then persists user + assistant rows.
                A failed write is reported but the view is NOT rolled back;
                the next reload() shows what actually got stored.
- on a failure: removes the optimistic user entry again and re-raises.
                Nothing was written, so view and store still agree.

Only one submit may be in flight at a time.  Switching conversations does
not cancel it: the turn is stored against the conversation it was sent in.
"""
from __future__ import annotations

from typing import List, Optional

from ollamate.memory.message_store import MessageStore
from ollamate.utils.logging import get_logger
from .context import ContextAssembler
from .exceptions import (
    ConversationBusyError,
    NoActiveConversationError,
    NoModelSelectedError,
    StoreReadError,
    StoreUnavailableError,
    StoreWriteError,
)
from .interfaces import InferenceEngine, ModelRegistry
from .protocol import ChatEntry, LocalModel, Role

logger = get_logger(__name__)


def _describe(exc: Exception) -> str:
    return getattr(exc, "message", None) or str(exc)


class OptimisticStateController:
    """Holds the active conversation's messages and drives a chat turn."""

    def __init__(
        self,
        messages: MessageStore,
        assembler: ContextAssembler,
        engine: InferenceEngine,
        registry: Optional[ModelRegistry] = None,
        model: Optional[str] = None,
    ) -> None:
        self.messages = messages
        self.assembler = assembler
        self.engine = engine
        self.registry = registry
        self.model = model
        self.models: List[LocalModel] = []
        self.conversation_id: Optional[int] = None
        self.last_error: Optional[str] = None
        self._mirror: List[ChatEntry] = []
        self._busy = False

    @property
    def mirror(self) -> List[ChatEntry]:
        """Snapshot of what the user currently sees."""
        return list(self._mirror)

    @property
    def is_busy(self) -> bool:
        return self._busy

    # ── active conversation ───────────────────────────────────────────────────

    async def activate(self, conversation_id: int) -> None:
        """Make *conversation_id* the active conversation and load its history."""
        self.conversation_id = conversation_id
        await self.reload()

    def deactivate(self) -> None:
        self.conversation_id = None
        self._mirror = []

    async def reload(self) -> None:
        """Replace the view with what the database holds for the active conversation."""
        conversation_id = self.conversation_id
        if conversation_id is None:
            self._mirror = []
            return
        try:
            stored = await self.messages.list(conversation_id)
        except (StoreReadError, StoreUnavailableError) as exc:
            self.last_error = f"Failed to load history: {_describe(exc)}"
            logger.error("Reload of conversation %d failed: %s", conversation_id, exc)
            raise
        # the active conversation may have changed while we were reading
        if conversation_id == self.conversation_id:
            self._mirror = [m.to_entry() for m in stored]
            logger.info("Loaded %d messages for conversation %d", len(stored), conversation_id)

    # ── chat turn ─────────────────────────────────────────────────────────────

    async def submit(self, content: str, model: Optional[str] = None) -> ChatEntry:
        """
        Send *content* as the next user message and return the assistant reply.

        Raises
        ------
        NoActiveConversationError, NoModelSelectedError, ConversationBusyError, ValueError
            Preconditions; the view is untouched.
        InferenceError
            The model call failed; the optimistic entry has been removed.
        StoreWriteError
            The reply arrived but could not be saved; the view keeps both turns.
        """
        conversation_id = self.conversation_id
        if conversation_id is None:
            raise NoActiveConversationError()
        prompt = content.strip()
        if not prompt:
            raise ValueError("Prompt must not be empty")
        model = model or self.model
        if not model:
            raise NoModelSelectedError()
        if self._busy:
            raise ConversationBusyError()

        user_entry = ChatEntry.user(prompt)
        self._busy = True
        self.last_error = None
        self._mirror.append(user_entry)
        try:
            try:
                context = await self.assembler.build_context(conversation_id, prompt)
                reply = await self.engine.chat(context, model)
            except Exception as exc:
                self._rollback(conversation_id, user_entry)
                self.last_error = f"Failed to get response: {_describe(exc)}"
                logger.warning("Chat turn in conversation %d failed: %s", conversation_id, exc)
                raise

            assistant_entry = ChatEntry.assistant(reply)
            if self._holds(user_entry):
                self._mirror.append(assistant_entry)
            elif conversation_id == self.conversation_id:
                # re-activated mid-flight: the reload did not see the pending turn
                self._mirror.extend([user_entry, assistant_entry])

            try:
                await self.messages.append(conversation_id, Role.USER, prompt)
                await self.messages.append(conversation_id, Role.ASSISTANT, reply)
            except (StoreWriteError, StoreUnavailableError) as exc:
                self.last_error = f"DB Save Error: {_describe(exc)}"
                logger.error(
                    "Reply for conversation %d shown but not saved: %s", conversation_id, exc
                )
                raise
            return assistant_entry
        finally:
            self._busy = False

    def _holds(self, entry: ChatEntry) -> bool:
        return any(e is entry for e in self._mirror)

    def _rollback(self, conversation_id: int, entry: ChatEntry) -> None:
        if conversation_id != self.conversation_id:
            return
        for i in range(len(self._mirror) - 1, -1, -1):
            if self._mirror[i] is entry:
                del self._mirror[i]
                return

    # ── model selection ───────────────────────────────────────────────────────

    async def refresh_models(self) -> List[LocalModel]:
        """Re-query the registry; keep the selection if it still exists, else pick the first model."""
        if self.registry is None:
            return self.models
        try:
            models = await self.registry.list_models()
        except Exception as exc:
            self.models = []
            self.model = None
            self.last_error = f"Failed to get models: {_describe(exc)}"
            logger.error("Listing models failed: %s", exc)
            raise
        self.models = models
        names = [m.name for m in models]
        if not names:
            self.model = None
        elif self.model not in names:
            self.model = names[0]
        return models

    def select_model(self, name: str) -> None:
        self.model = name
        self.last_error = None
        logger.info("Model changed to %s", name)
