"""Records, errors and collaborator contracts shared across ollamate."""

from .exceptions import (
    ConversationBusyError,
    ConversationNotFoundError,
    InferenceConnectionError,
    InferenceError,
    InferenceTimeoutError,
    InvalidRoleError,
    MigrationError,
    NoActiveConversationError,
    NoModelSelectedError,
    OllamateError,
    PartialDeleteError,
    StoreReadError,
    StoreUnavailableError,
    StoreWriteError,
    UnknownModelError,
)
from .protocol import ChatEntry, Conversation, LocalModel, Message, Role

__all__ = [
    "ChatEntry",
    "Conversation",
    "LocalModel",
    "Message",
    "Role",
    "ConversationBusyError",
    "ConversationNotFoundError",
    "InferenceConnectionError",
    "InferenceError",
    "InferenceTimeoutError",
    "InvalidRoleError",
    "MigrationError",
    "NoActiveConversationError",
    "NoModelSelectedError",
    "OllamateError",
    "PartialDeleteError",
    "StoreReadError",
    "StoreUnavailableError",
    "StoreWriteError",
    "UnknownModelError",
]
