"""
Ollama chat client.

Ollama serves an OpenAI-compatible API under ``<host>/v1``, so the regular
``openai`` SDK is used with a placeholder API key.  SDK exceptions are
translated into the InferenceError family so callers can tell a missing
daemon, a timeout and an unknown model apart.
"""
from __future__ import annotations

from typing import List, Optional

import openai
from openai import AsyncOpenAI

from ollamate.config import get_config
from ollamate.core.exceptions import (
    InferenceConnectionError,
    InferenceError,
    InferenceTimeoutError,
    UnknownModelError,
)
from ollamate.core.protocol import ChatEntry, to_payload
from ollamate.utils.logging import get_logger

logger = get_logger(__name__)

# Ollama ignores the key but the SDK refuses to start without one.
OLLAMA_API_KEY = "ollama"


def get_client(host: Optional[str] = None, timeout: Optional[float] = None) -> AsyncOpenAI:
    """Return an AsyncOpenAI client pointed at the local Ollama daemon."""
    cfg = get_config()
    host = (host or cfg.ollama_host).rstrip("/")
    return AsyncOpenAI(
        base_url=f"{host}/v1",
        api_key=OLLAMA_API_KEY,
        timeout=timeout if timeout is not None else cfg.timeout,
        max_retries=0,
    )


class OllamaChatClient:
    """InferenceEngine backed by ``/v1/chat/completions``."""

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        temperature: Optional[float] = None,
    ) -> None:
        self.client = client or get_client()
        self.temperature = temperature if temperature is not None else get_config().temperature

    async def chat(self, messages: List[ChatEntry], model: str) -> str:
        """
        Send *messages* (in order) to *model* and return the reply text.

        Raises
        ------
        InferenceTimeoutError, InferenceConnectionError, UnknownModelError, InferenceError
        """
        logger.info("Chat request: model=%s  messages=%d", model, len(messages))
        try:
            response = await self.client.chat.completions.create(
                model=model,
                messages=to_payload(messages),
                temperature=self.temperature,
            )
        # APITimeoutError subclasses APIConnectionError, so it goes first
        except openai.APITimeoutError as exc:
            raise InferenceTimeoutError(
                f"Model '{model}' did not answer in time", {"model": model}
            ) from exc
        except openai.APIConnectionError as exc:
            raise InferenceConnectionError(
                f"Could not reach Ollama: {exc}", {"model": model}
            ) from exc
        except openai.NotFoundError as exc:
            raise UnknownModelError(model) from exc
        except openai.APIError as exc:
            raise InferenceError(f"Ollama request failed: {exc}", {"model": model}) from exc

        if not response.choices:
            raise InferenceError(f"Model '{model}' returned no choices", {"model": model})
        reply = response.choices[0].message.content or ""
        logger.info("Chat reply: model=%s  %d chars", model, len(reply))
        return reply
