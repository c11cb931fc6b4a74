"""FastAPI server for Ollamate: conversations, history, settings and chat."""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from ollamate.config import get_config
from ollamate.core.context import ContextAssembler
from ollamate.core.controller import OptimisticStateController
from ollamate.core.exceptions import (
    ConversationBusyError,
    ConversationNotFoundError,
    InferenceConnectionError,
    InferenceError,
    InferenceTimeoutError,
    InvalidRoleError,
    NoActiveConversationError,
    NoModelSelectedError,
    OllamateError,
    StoreUnavailableError,
    UnknownModelError,
)
from ollamate.core.interfaces import InferenceEngine, ModelRegistry
from ollamate.core.protocol import ChatEntry, Conversation, LocalModel, Message
from ollamate.inference import OllamaChatClient, OllamaModelRegistry
from ollamate.memory import (
    ConversationStore,
    Database,
    MessageStore,
    SettingsStore,
    initialize_store,
)
from ollamate.utils.logging import get_logger

logger = get_logger(__name__)


# ── Request / Response models ──────────────────────────────────────────────────

class CreateConversationRequest(BaseModel):
    name: str = Field("New Chat", min_length=1)


class RenameConversationRequest(BaseModel):
    name: str = Field(min_length=1)


class ConversationListResponse(BaseModel):
    conversations: List[Conversation]


class MessagesResponse(BaseModel):
    conversation_id: int
    messages: List[Message]


class ChatRequest(BaseModel):
    prompt: str
    model: Optional[str] = None  # omit to use the currently selected model

    model_config = {
        "json_schema_extra": {
            "example": {"prompt": "Summarise the plot of Hamlet.", "model": "llama3.2:latest"}
        }
    }


class ChatResponse(BaseModel):
    conversation_id: int
    reply: str
    model: str
    messages: List[ChatEntry]   # the full view after this turn


class SystemPromptBody(BaseModel):
    value: str


class ModelsResponse(BaseModel):
    models: List[LocalModel]
    selected: Optional[str] = None


# ── Application state ──────────────────────────────────────────────────────────

@dataclass
class AppState:
    db: Database
    conversations: ConversationStore
    messages: MessageStore
    settings: SettingsStore
    controller: OptimisticStateController


def _status_for(exc: Exception) -> int:
    if isinstance(exc, (StoreUnavailableError, InferenceConnectionError)):
        return 503
    if isinstance(exc, InferenceTimeoutError):
        return 504
    if isinstance(exc, (UnknownModelError, ConversationNotFoundError)):
        return 404
    if isinstance(exc, ConversationBusyError):
        return 409
    if isinstance(exc, (InvalidRoleError, NoActiveConversationError, NoModelSelectedError, ValueError)):
        return 422
    if isinstance(exc, InferenceError):
        return 502
    return 500


def _http_error(exc: Exception) -> HTTPException:
    detail = exc.message if isinstance(exc, OllamateError) else str(exc)
    return HTTPException(status_code=_status_for(exc), detail=detail)


def _state(request: Request) -> AppState:
    state = getattr(request.app.state, "ollamate", None)
    if state is None:
        raise HTTPException(status_code=503, detail="Database is not initialised")
    return state


def create_app(
    db_path: Optional[Union[Path, str]] = None,
    engine: Optional[InferenceEngine] = None,
    registry: Optional[ModelRegistry] = None,
) -> FastAPI:
    """Build the API.  The database is opened and migrated on startup."""

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        cfg = get_config()
        path = db_path or cfg.db_path
        logger.info("Initialising database %s", path)
        db = await initialize_store(path)

        messages = MessageStore(db)
        settings = SettingsStore(db)
        controller = OptimisticStateController(
            messages=messages,
            assembler=ContextAssembler(settings, messages),
            engine=engine or OllamaChatClient(),
            registry=registry or OllamaModelRegistry(),
            model=cfg.model,
        )
        try:
            await controller.refresh_models()
        except InferenceError as exc:
            logger.warning("Model list unavailable at startup: %s", exc.message)

        _app.state.ollamate = AppState(
            db=db,
            conversations=ConversationStore(db),
            messages=messages,
            settings=settings,
            controller=controller,
        )
        try:
            yield
        finally:
            _app.state.ollamate = None
            await db.close()

    app = FastAPI(
        title="Ollamate",
        description="Local multi-conversation chat client for models served by Ollama.",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],            # local desktop client
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Routes ─────────────────────────────────────────────────────────────────

    @app.get("/health", summary="Health check")
    def health_check() -> dict:
        """Returns 200 OK when the service is running."""
        return {"status": "ok"}

    @app.get("/models", response_model=ModelsResponse, summary="List local Ollama models")
    async def list_models(request: Request) -> ModelsResponse:
        controller = _state(request).controller
        try:
            models = await controller.refresh_models()
        except OllamateError as exc:
            logger.error("GET /models failed: %s", exc.message)
            raise _http_error(exc) from exc
        return ModelsResponse(models=models, selected=controller.model)

    @app.get("/conversations", response_model=ConversationListResponse, summary="List conversations")
    async def list_conversations(request: Request) -> ConversationListResponse:
        """Most recently created first."""
        try:
            items = await _state(request).conversations.list()
        except OllamateError as exc:
            raise _http_error(exc) from exc
        return ConversationListResponse(conversations=items)

    @app.post("/conversations", response_model=Conversation, status_code=201, summary="Create a conversation")
    async def create_conversation(body: CreateConversationRequest, request: Request) -> Conversation:
        try:
            return await _state(request).conversations.create(body.name.strip() or "New Chat")
        except OllamateError as exc:
            logger.error("POST /conversations failed: %s", exc.message)
            raise _http_error(exc) from exc

    @app.patch("/conversations/{conversation_id}", response_model=Conversation, summary="Rename a conversation")
    async def rename_conversation(
        conversation_id: int, body: RenameConversationRequest, request: Request
    ) -> Conversation:
        state = _state(request)
        try:
            await state.conversations.rename(conversation_id, body.name)
            conv = await state.conversations.get(conversation_id)
        except OllamateError as exc:
            raise _http_error(exc) from exc
        if conv is None:
            raise HTTPException(status_code=404, detail=f"Conversation {conversation_id} not found")
        return conv

    @app.delete("/conversations/{conversation_id}", summary="Delete a conversation and its messages")
    async def delete_conversation(conversation_id: int, request: Request) -> dict:
        state = _state(request)
        try:
            removed = await state.conversations.delete(conversation_id)
        except OllamateError as exc:
            logger.error("DELETE /conversations/%d failed: %s", conversation_id, exc.message)
            raise _http_error(exc) from exc
        if not removed:
            raise HTTPException(status_code=404, detail=f"Conversation {conversation_id} not found")
        if state.controller.conversation_id == conversation_id:
            state.controller.deactivate()
        return {"conversation_id": conversation_id, "status": "deleted"}

    @app.get(
        "/conversations/{conversation_id}/messages",
        response_model=MessagesResponse,
        summary="Stored messages of a conversation, oldest first",
    )
    async def get_messages(conversation_id: int, request: Request) -> MessagesResponse:
        try:
            msgs = await _state(request).messages.list(conversation_id)
        except OllamateError as exc:
            raise _http_error(exc) from exc
        return MessagesResponse(conversation_id=conversation_id, messages=msgs)

    @app.post(
        "/conversations/{conversation_id}/chat",
        response_model=ChatResponse,
        summary="Send a prompt and get the model's reply",
    )
    async def chat(conversation_id: int, body: ChatRequest, request: Request) -> ChatResponse:
        """
        Runs one turn through the controller.  A failed model call leaves the
        conversation unchanged; a failed save after a reply returns 500 and the
        turn is missing from ``/messages`` until it is sent again.
        """
        state = _state(request)
        controller = state.controller
        logger.info("POST /conversations/%d/chat  prompt=%s", conversation_id, body.prompt[:80])
        try:
            if await state.conversations.get(conversation_id) is None:
                raise ConversationNotFoundError(conversation_id)
            # a rejected request must not switch the view under the pending turn
            if controller.is_busy:
                raise ConversationBusyError()
            if controller.conversation_id != conversation_id:
                await controller.activate(conversation_id)
            reply = await controller.submit(body.prompt, model=body.model)
            if controller.conversation_id == conversation_id:
                view = controller.mirror
            else:
                view = [m.to_entry() for m in await state.messages.list(conversation_id)]
        except (OllamateError, ValueError) as exc:
            logger.error("Chat turn failed: %s", exc)
            raise _http_error(exc) from exc
        return ChatResponse(
            conversation_id=conversation_id,
            reply=reply.content,
            model=body.model or controller.model,
            messages=view,
        )

    @app.get("/settings/system-prompt", response_model=SystemPromptBody, summary="Global system prompt")
    async def get_system_prompt(request: Request) -> SystemPromptBody:
        try:
            value = await _state(request).settings.get_system_prompt()
        except OllamateError as exc:
            raise _http_error(exc) from exc
        return SystemPromptBody(value=value or "")

    @app.put("/settings/system-prompt", response_model=SystemPromptBody, summary="Replace the global system prompt")
    async def put_system_prompt(body: SystemPromptBody, request: Request) -> SystemPromptBody:
        try:
            await _state(request).settings.set_system_prompt(body.value)
        except OllamateError as exc:
            logger.error("PUT /settings/system-prompt failed: %s", exc.message)
            raise _http_error(exc) from exc
        return body

    return app


app = create_app()


# ── Entry point (local dev) ────────────────────────────────────────────────────

if __name__ == "__main__":
    import yaml
    import uvicorn

    _cfg_path = Path(__file__).resolve().parents[2] / "config.yaml"
    _server_cfg: dict = {}
    if _cfg_path.exists():
        with open(_cfg_path) as f:
            _server_cfg = (yaml.safe_load(f) or {}).get("server", {})

    uvicorn.run(
        "ollamate.web_app.server:app",
        host=_server_cfg.get("host", "127.0.0.1"),
        port=int(_server_cfg.get("port", 8000)),
        reload=True,
    )
