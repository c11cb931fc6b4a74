"""
Collaborator contracts for the chat controller.

- InferenceEngine.chat(messages, model) -> reply text
- ModelRegistry.list_models() -> [LocalModel, ...] (may be empty)

The controller depends on these protocols only, so tests can pass simple
fakes instead of talking to a daemon.
"""

from __future__ import annotations
from typing import List, Protocol
from .protocol import ChatEntry, LocalModel


class InferenceEngine(Protocol):
    async def chat(self, messages: List[ChatEntry], model: str) -> str: ...


class ModelRegistry(Protocol):
    async def list_models(self) -> List[LocalModel]: ...
