"""
Terminal entry point for Ollamate.

Starts the store, picks a model, and runs an interactive chat loop.

Commands
--------
    /new [name]          start a conversation
    /list                list conversations (newest first)
    /switch <id>         make <id> the active conversation
    /rename <id> <name>  rename a conversation
    /delete <id>         delete a conversation and its messages
    /system [text]       show or replace the global system prompt
    /models              list local models
    /model <name>        select a model
    /history             reprint the active conversation
    /quit                exit
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from .config import get_config
from .core.context import ContextAssembler
from .core.controller import OptimisticStateController
from .core.exceptions import OllamateError
from .core.interfaces import InferenceEngine, ModelRegistry
from .inference import OllamaChatClient, OllamaModelRegistry
from .memory import ConversationStore, Database, MessageStore, SettingsStore, initialize_store
from .utils.logging import get_logger

logger = get_logger("ollamate")


class ChatApp:
    """
    Wires the stores, the controller and the Ollama adapters together
    around one database handle.
    """

    def __init__(
        self,
        db: Database,
        model: Optional[str] = None,
        engine: Optional[InferenceEngine] = None,
        registry: Optional[ModelRegistry] = None,
    ):
        self.db = db
        self.conversations = ConversationStore(db)
        self.messages = MessageStore(db)
        self.settings = SettingsStore(db)
        self.controller = OptimisticStateController(
            messages=self.messages,
            assembler=ContextAssembler(self.settings, self.messages),
            engine=engine or OllamaChatClient(),
            registry=registry or OllamaModelRegistry(),
            model=model,
        )

    @classmethod
    async def start(cls, db_path: Optional[Path] = None) -> "ChatApp":
        cfg = get_config()
        db = await initialize_store(db_path or cfg.db_path)
        return cls(db, model=cfg.model)

    async def close(self) -> None:
        await self.db.close()

    async def handle_command(self, line: str) -> bool:
        """Run one slash command.  Returns False when the loop should stop."""
        cmd, _, arg = line[1:].partition(" ")
        arg = arg.strip()

        if cmd in ("quit", "exit"):
            return False

        if cmd == "new":
            conv = await self.conversations.create(arg or "New Chat")
            await self.controller.activate(conv.id)
            print(f"Started conversation {conv.id}: {conv.name}")
        elif cmd == "list":
            for conv in await self.conversations.list():
                marker = "*" if conv.id == self.controller.conversation_id else " "
                print(f" {marker} {conv.id:>4}  {conv.name}  ({conv.created_at:%Y-%m-%d %H:%M})")
        elif cmd == "switch":
            conv = await self.conversations.get(int(arg))
            if conv is None:
                print(f"No conversation {arg}")
            else:
                await self.controller.activate(conv.id)
                self.print_history()
        elif cmd == "rename":
            conv_id, _, name = arg.partition(" ")
            await self.conversations.rename(int(conv_id), name.strip() or "New Chat")
            print("Renamed.")
        elif cmd == "delete":
            conv_id = int(arg)
            await self.conversations.delete(conv_id)
            if self.controller.conversation_id == conv_id:
                self.controller.deactivate()
            print(f"Deleted conversation {conv_id}")
        elif cmd == "system":
            if arg:
                await self.settings.set_system_prompt(arg)
                print("System prompt saved.")
            else:
                print(await self.settings.get_system_prompt() or "(empty)")
        elif cmd == "models":
            for m in await self.controller.refresh_models():
                marker = "*" if m.name == self.controller.model else " "
                print(f" {marker} {m.name}  {m.size / 1e9:.1f} GB")
            if not self.controller.models:
                print("No local models. Pull one with `ollama pull <model>`.")
        elif cmd == "model":
            self.controller.select_model(arg)
        elif cmd == "history":
            self.print_history()
        else:
            print(f"Unknown command /{cmd}")
        return True

    def print_history(self) -> None:
        for entry in self.controller.mirror:
            print(f"[{entry.role.value}] {entry.content}")

    async def run(self) -> None:
        try:
            await self.controller.refresh_models()
        except OllamateError as exc:
            print(f"Warning: {exc.message}")

        convs = await self.conversations.list()
        if convs:
            await self.controller.activate(convs[0].id)
            self.print_history()

        print(f"Model: {self.controller.model or '(none)'}. Type /new to start, /quit to exit")
        while True:
            try:
                line = (await asyncio.to_thread(input, "> ")).strip()
            except EOFError:
                break
            if line and not await self.handle_line(line):
                break

    async def handle_line(self, line: str) -> bool:
        """Run a command or send a message.  Returns False when the loop should stop."""
        # only report an error raised by this line
        self.controller.last_error = None
        try:
            if line.startswith("/"):
                return await self.handle_command(line)
            reply = await self.controller.submit(line)
            print(f"[assistant] {reply.content}")
        except (OllamateError, ValueError) as exc:
            print(f"Error: {self.controller.last_error or getattr(exc, 'message', None) or exc}")
        return True


def setup_logging(level: int = logging.WARNING) -> None:
    """Keep the chat loop readable: only warnings and errors reach the terminal."""
    logging.getLogger("ollamate").setLevel(level)
    for name in list(logging.root.manager.loggerDict):
        if name.startswith("ollamate."):
            logging.getLogger(name).setLevel(level)


async def _main() -> None:
    try:
        app = await ChatApp.start()
    except OllamateError as exc:
        logger.error("Startup failed: %s", exc)
        print(f"Failed to initialize database: {exc.message}. Please restart the application.")
        return
    setup_logging()
    try:
        await app.run()
    finally:
        await app.close()


def main() -> None:
    asyncio.run(_main())


if __name__ == "__main__":
    main()
