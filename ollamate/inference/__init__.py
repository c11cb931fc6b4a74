"""Ollama adapters for the InferenceEngine and ModelRegistry contracts."""
from .client import OllamaChatClient
from .registry import OllamaModelRegistry

__all__ = ["OllamaChatClient", "OllamaModelRegistry"]
