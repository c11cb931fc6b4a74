"""Lists the models pulled into the local Ollama daemon (``GET /api/tags``)."""
from __future__ import annotations

from typing import List, Optional

import httpx

from ollamate.config import get_config
from ollamate.core.exceptions import (
    InferenceConnectionError,
    InferenceError,
    InferenceTimeoutError,
)
from ollamate.core.protocol import LocalModel
from ollamate.utils.logging import get_logger

logger = get_logger(__name__)


class OllamaModelRegistry:
    """ModelRegistry backed by the Ollama native API."""

    def __init__(
        self,
        host: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.host = (host or get_config().ollama_host).rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def list_models(self) -> List[LocalModel]:
        """Return local models; an empty list when nothing has been pulled."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(f"{self.host}/api/tags")
                resp.raise_for_status()
                data = resp.json() or {}
        except httpx.TimeoutException as exc:
            raise InferenceTimeoutError("Timed out listing Ollama models", {"host": self.host}) from exc
        except httpx.TransportError as exc:
            raise InferenceConnectionError(
                f"Could not reach Ollama at {self.host}: {exc}", {"host": self.host}
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise InferenceError(
                f"Ollama returned HTTP {exc.response.status_code} listing models",
                {"host": self.host},
            ) from exc
        except ValueError as exc:
            raise InferenceError(f"Malformed model list from Ollama: {exc}", {"host": self.host}) from exc

        models = [
            LocalModel(
                name=item["name"],
                modified_at=item.get("modified_at"),
                size=int(item.get("size") or 0),
            )
            for item in data.get("models") or []
            if item.get("name")
        ]
        logger.info("Ollama reports %d local models", len(models))
        return models
