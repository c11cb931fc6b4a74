"""Error taxonomy for the conversation store, the chat controller and the Ollama adapters."""
from typing import Any, Dict, Optional


class OllamateError(Exception):
    """Base exception for Ollamate."""

    def __init__(
        self,
        message: str,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


# ── store ─────────────────────────────────────────────────────────────────────

class StoreUnavailableError(OllamateError):
    """Raised when the database could not be opened, or the handle is closed."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "STORE_UNAVAILABLE", details)


class MigrationError(OllamateError):
    """Raised when schema bootstrap fails for any reason other than an existing column."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "MIGRATION_ERROR", details)


class StoreReadError(OllamateError):
    """Raised when a query fails or returns a row that cannot be decoded."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "STORE_READ_ERROR", details)


class StoreWriteError(OllamateError):
    """Raised when an insert, update or delete fails."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: str = "STORE_WRITE_ERROR",
    ):
        super().__init__(message, error_code, details)


class PartialDeleteError(StoreWriteError):
    """Messages were deleted but the conversation row survived."""

    def __init__(self, conversation_id: int, reason: str):
        super().__init__(
            f"Messages of conversation {conversation_id} were deleted but the "
            f"conversation itself could not be removed: {reason}",
            {"conversation_id": conversation_id},
            error_code="PARTIAL_DELETE",
        )


# ── validation ────────────────────────────────────────────────────────────────

class InvalidRoleError(OllamateError, ValueError):
    """Raised when a message role is not one of user / assistant / system."""

    def __init__(self, role: Any):
        super().__init__(
            f"Invalid message role {role!r}; expected one of user, assistant, system",
            "INVALID_ROLE",
            {"role": role},
        )


class ConversationNotFoundError(OllamateError):
    """Raised when a conversation id does not match any row."""

    def __init__(self, conversation_id: int):
        super().__init__(
            f"Conversation {conversation_id} not found",
            "NOT_FOUND",
            {"conversation_id": conversation_id},
        )


class NoActiveConversationError(OllamateError):
    """Raised when a prompt is submitted with no conversation selected."""

    def __init__(self):
        super().__init__("No active conversation; create or select one first", "NO_CONVERSATION")


class NoModelSelectedError(OllamateError):
    """Raised when a prompt is submitted with no model selected."""

    def __init__(self):
        super().__init__("No model selected", "NO_MODEL")


class ConversationBusyError(OllamateError):
    """Raised when a prompt is submitted while another one is still awaiting a reply."""

    def __init__(self):
        super().__init__("A reply is still pending; wait for it before sending again", "BUSY")


# ── inference ─────────────────────────────────────────────────────────────────

class InferenceError(OllamateError):
    """Raised when the inference engine does not produce a reply."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: str = "INFERENCE_ERROR",
    ):
        super().__init__(message, error_code, details)


class InferenceConnectionError(InferenceError):
    """The Ollama daemon could not be reached."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, "INFERENCE_CONNECTION")


class InferenceTimeoutError(InferenceError):
    """The Ollama daemon did not answer in time."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, "INFERENCE_TIMEOUT")


class UnknownModelError(InferenceError):
    """The requested model is not available locally."""

    def __init__(self, model: str):
        super().__init__(
            f"Model '{model}' is not available locally; pull it with `ollama pull {model}`",
            {"model": model},
            "UNKNOWN_MODEL",
        )
