"""
Ollamate: a local multi-conversation chat client for Ollama models.

Conversation history and the global system prompt live in SQLite; the
chat controller keeps an optimistic in-memory view of the active
conversation in step with it.
"""

__version__ = "1.0.0"
