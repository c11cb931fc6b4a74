"""
Context assembly: the ordered message list handed to the inference engine.

Order is fixed and positional:

    [system prompt?]  +  persisted history (oldest first)  +  pending user message

The system entry is present only when the stored prompt is non-empty;
whitespace is sent as stored.
"""
from __future__ import annotations

from typing import List

from ollamate.memory.message_store import MessageStore
from ollamate.memory.settings_store import SettingsStore
from ollamate.memory.schema import GLOBAL_SYSTEM_PROMPT_KEY
from ollamate.utils.logging import get_logger
from .protocol import ChatEntry

logger = get_logger(__name__)


class ContextAssembler:
    """Builds inference payloads from settings, stored history and a pending prompt."""

    def __init__(self, settings: SettingsStore, messages: MessageStore) -> None:
        self.settings = settings
        self.messages = messages

    async def build_context(self, conversation_id: int, pending_content: str) -> List[ChatEntry]:
        system_prompt = await self.settings.get(GLOBAL_SYSTEM_PROMPT_KEY)
        history = await self.messages.list(conversation_id)

        context: List[ChatEntry] = []
        if system_prompt:
            context.append(ChatEntry.system(system_prompt))
        context.extend(m.to_entry() for m in history)
        context.append(ChatEntry.user(pending_content))

        logger.debug(
            "Built context for conversation %d: %d entries (%d from history)",
            conversation_id, len(context), len(history),
        )
        return context
