import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from src.gemchat.app.event_bus import EventBus
from src.gemchat.config import DATABASE_FILE
from src.gemchat.models.ai_model import get_model
from src.gemchat.models.event_types import MESSAGE_UPDATED, STREAM_ENDED, STREAM_FAILED
from src.gemchat.models.events import Event
from src.gemchat.models.exceptions import ProviderConfigurationError
from src.gemchat.models.session import ChatSession
from src.gemchat.services.attachment_service import AttachmentService
from src.gemchat.services.chat_session_controller import ChatSessionController
from src.gemchat.services.logging_service import LoggingService
from src.gemchat.services.session_persistence_service import SessionPersistenceService
from src.gemchat.services.session_store import SessionStore
from src.gemchat.services.user_settings_manager import load_user_settings, update_selected_model
from src.gemchat.utils.citations import format_citations
from src.providers.base import GenerationClient
from src.providers.gemini_provider import GeminiProvider

logger = logging.getLogger(__name__)

HELP_TEXT = """Commands:
  /new                 start a new conversation
  /sessions            list saved conversations
  /open <n>            switch to conversation number n
  /delete <n>          delete conversation number n
  /model [id]          show or switch the model
  /attach <path> ...   attach images to the next message
  /help                show this help
  /quit                exit"""


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="gemchat", description="Chat with Gemini from the terminal.")
    parser.add_argument("--model", help="Model id to start with")
    parser.add_argument("--db", help="Path of the SQLite file holding the chat history")
    parser.add_argument("--list", action="store_true", help="List saved conversations and exit")
    parser.add_argument("--verbose", action="store_true", help="Echo INFO logs to the console")
    return parser.parse_args(argv)


def resolve_db_path(args: argparse.Namespace, settings: Dict[str, Any]) -> Path:
    return Path(args.db or settings.get("database_path") or DATABASE_FILE).expanduser()


def write_session_list(out, sessions: List[ChatSession], active_session_id: Optional[str] = None) -> None:
    if not sessions:
        out.write("No saved conversations.\n")
        return
    for index, session in enumerate(sessions, start=1):
        marker = "*" if session.id == active_session_id else " "
        out.write(f"{marker}{index:>3}. {session.title} ({len(session.messages)} messages)\n")


def list_saved_sessions(args: argparse.Namespace, out=None) -> None:
    """Print the stored conversations without contacting the model service."""
    persistence = SessionPersistenceService(resolve_db_path(args, load_user_settings()))
    try:
        write_session_list(out or sys.stdout, persistence.load())
    finally:
        persistence.close()


class ChatApp:
    """
    The main application class: wires the chat session layer together and
    runs a line-oriented terminal front end on top of it.
    """

    def __init__(
        self,
        args: argparse.Namespace,
        client: Optional[GenerationClient] = None,
        out=None,
    ):
        self.out = out or sys.stdout
        settings = load_user_settings()
        # The provider goes first so a missing key leaves no database open.
        self.client = client if client is not None else GeminiProvider()

        self.event_bus = EventBus()
        self.persistence = SessionPersistenceService(resolve_db_path(args, settings))
        self.store = SessionStore(self.persistence)
        self.store.load_from_storage()
        self.attachments = AttachmentService()
        self.pending_attachments: List[str] = []

        self.controller = ChatSessionController(
            self.client,
            self.store,
            event_bus=self.event_bus,
            model_id=args.model or settings["selected_model"],
        )
        self._register_event_handlers()
        self.controller.start_new_chat()
        logger.info("ChatApp initialized with %d saved sessions", len(self.store))

    def _register_event_handlers(self) -> None:
        self.event_bus.subscribe(MESSAGE_UPDATED, self._on_message_updated)
        self.event_bus.subscribe(STREAM_ENDED, self._on_stream_ended)
        self.event_bus.subscribe(STREAM_FAILED, self._on_stream_failed)

    # ------------------------------------------------------------------ #
    # Event handlers
    # ------------------------------------------------------------------ #

    def _on_message_updated(self, event: Event) -> None:
        delta = event.payload.get("text_delta") or ""
        if delta:
            self.out.write(delta)
            self.out.flush()

    def _on_stream_ended(self, event: Event) -> None:
        self.out.write("\n")
        message_id = event.payload.get("message_id")
        message = next((m for m in self.controller.messages if m.id == message_id), None)
        if message is None:
            return
        if message.image:
            self.out.write(f"[generated image, {len(message.image)} bytes as data-URI]\n")
        citations = format_citations(message)
        if citations:
            self.out.write(f"Sources:\n{citations}\n")

    def _on_stream_failed(self, event: Event) -> None:
        error_id = event.payload.get("error_message_id")
        notice = next((m.content for m in self.controller.messages if m.id == error_id), "")
        self.out.write(f"\n{notice}\n")

    # ------------------------------------------------------------------ #
    # Commands
    # ------------------------------------------------------------------ #

    def print_sessions(self) -> None:
        write_session_list(self.out, self.controller.sessions, self.controller.active_session_id)

    def _session_id_at(self, raw_index: str) -> Optional[str]:
        try:
            index = int(raw_index) - 1
        except ValueError:
            return None
        sessions = self.controller.sessions
        if 0 <= index < len(sessions):
            return sessions[index].id
        return None

    async def handle_line(self, line: str) -> bool:
        """Process one input line. Returns False when the user asked to quit."""
        stripped = line.strip()
        if not stripped.startswith("/"):
            attachments, self.pending_attachments = self.pending_attachments, []
            await self.controller.send_message(line, attachments)
            return True

        parts = stripped.split()
        command, arguments = parts[0].lower(), parts[1:]
        if command in ("/quit", "/exit"):
            return False
        if command == "/help":
            self.out.write(HELP_TEXT + "\n")
        elif command == "/new":
            self.controller.new_chat()
            self.out.write("Started a new conversation.\n")
        elif command == "/sessions":
            self.print_sessions()
        elif command in ("/open", "/delete"):
            session_id = self._session_id_at(arguments[0]) if arguments else None
            if session_id is None:
                self.out.write("No such conversation.\n")
            elif command == "/open":
                self.controller.select_session(session_id)
                for message in self.controller.messages:
                    self.out.write(f"{message.role.value}> {message.content}\n")
            else:
                self.controller.delete_session(session_id)
                self.out.write("Conversation deleted.\n")
        elif command == "/model":
            self._handle_model_command(arguments)
        elif command == "/attach":
            encoded = self.attachments.encode_files(arguments)
            self.pending_attachments.extend(encoded)
            self.out.write(f"{len(encoded)} image(s) attached to the next message.\n")
        else:
            self.out.write(f"Unknown command {command}. Type /help.\n")
        return True

    def _handle_model_command(self, arguments: List[str]) -> None:
        if not arguments:
            for model in self.controller.available_models:
                marker = "*" if model.id == self.controller.selected_model_id else " "
                self.out.write(f"{marker} {model.id:<28} {model.description}\n")
            return
        if self.controller.select_model(arguments[0]):
            update_selected_model(arguments[0])
            self.out.write(f"Now using {get_model(arguments[0]).name}.\n")
        else:
            self.out.write(f"Unknown model {arguments[0]}.\n")

    async def run_repl(self) -> None:
        self.out.write("Gemchat. Type /help for commands.\n")
        while True:
            try:
                line = await asyncio.to_thread(input, "you> ")
            except EOFError:
                break
            if not await self.handle_line(line):
                break
        self.persistence.close()

    def run(self) -> None:
        """Starts the terminal front end and blocks until the user quits."""
        logger.info("Starting Gemchat...")
        asyncio.run(self.run_repl())


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    LoggingService.setup_logging(logging.INFO if args.verbose else logging.WARNING)
    if args.list:
        list_saved_sessions(args)
        return 0

    try:
        app = ChatApp(args)
    except ProviderConfigurationError as exc:
        logger.error("Cannot start: %s", exc)
        print(str(exc), file=sys.stderr)
        return 1
    app.run()
    return 0
