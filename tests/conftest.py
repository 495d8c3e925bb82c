from __future__ import annotations

import asyncio
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, Callable, Dict, List, Optional, Sequence, Tuple

import pytest
from PySide6.QtCore import QCoreApplication

from src.gemchat.models.events import Event
from src.gemchat.models.fragment import Fragment, InlineImage
from src.gemchat.models.history import HistoryTurn
from src.gemchat.models.message import GroundingChunk, GroundingMetadata, GroundingWebSource
from src.gemchat.services.chat_session_controller import ChatSessionController
from src.gemchat.services.session_persistence_service import SessionPersistenceService
from src.gemchat.services.session_store import SessionStore
from src.providers.base import ChatContext, GenerationClient


class RecordingEventBus:
    """Synchronous in-memory event bus used by tests."""

    def __init__(self) -> None:
        self._subscribers: Dict[str, List[Callable[[Event], None]]] = {}
        self.dispatched: List[Event] = []

    def subscribe(self, event_type: str, callback: Callable[[Event], None]) -> None:
        self._subscribers.setdefault(event_type, []).append(callback)

    def dispatch(self, event: Event) -> None:
        self.dispatched.append(event)
        for callback in self._subscribers.get(event.event_type, []):
            callback(event)

    def of_type(self, event_type: str) -> List[Event]:
        return [event for event in self.dispatched if event.event_type == event_type]


@dataclass
class ScriptedReply:
    """One canned reply: fragments to yield, then an optional failure."""

    fragments: List[Fragment] = field(default_factory=list)
    error: Optional[Exception] = None
    send_error: Optional[Exception] = None
    hold: bool = False
    started: Optional[asyncio.Event] = None
    release: Optional[asyncio.Event] = None


class FakeGenerationClient(GenerationClient):
    """Generation client that replays scripted replies."""

    def __init__(self) -> None:
        self.contexts: List[ChatContext] = []
        self.sent: List[Tuple[ChatContext, str, List[str]]] = []
        self.replies: List[ScriptedReply] = []

    @property
    def provider_name(self) -> str:
        return "Fake"

    def queue_reply(self, *fragments: Fragment, error: Optional[Exception] = None, **kwargs) -> ScriptedReply:
        reply = ScriptedReply(fragments=list(fragments), error=error, **kwargs)
        self.replies.append(reply)
        return reply

    def create_context(self, model_id: str, history: Sequence[HistoryTurn]) -> ChatContext:
        context = ChatContext(model_id=model_id, history=list(history), handle=len(self.contexts))
        self.contexts.append(context)
        return context

    async def send(self, context: ChatContext, text: str, attachments: Sequence[str]) -> AsyncIterator[Fragment]:
        self.sent.append((context, text, list(attachments)))
        reply = self.replies.pop(0) if self.replies else ScriptedReply()
        if reply.send_error is not None:
            raise reply.send_error
        return self._stream(reply)

    @staticmethod
    async def _stream(reply: ScriptedReply) -> AsyncIterator[Fragment]:
        if reply.hold:
            reply.started.set()
            await reply.release.wait()
        for fragment in reply.fragments:
            await asyncio.sleep(0)
            yield fragment
        if reply.error is not None:
            raise reply.error


def text_fragment(text: str) -> Fragment:
    return Fragment(text=text)


def image_fragment(data: str = "iVBORw0KGgo=", mime_type: str = "image/png") -> Fragment:
    return Fragment(inline_image=InlineImage(mime_type=mime_type, data=data))


def sources_fragment(*uris: str) -> Fragment:
    return Fragment(
        sources=GroundingMetadata(
            grounding_chunks=[GroundingChunk(web=GroundingWebSource(uri=uri, title=uri)) for uri in uris]
        )
    )


@pytest.fixture(scope="session")
def qapp():
    """Provide a QCoreApplication instance for Qt event processing."""
    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication(sys.argv)
    return app


@pytest.fixture
def event_bus() -> RecordingEventBus:
    return RecordingEventBus()


@pytest.fixture
def persistence(tmp_path: Path):
    service = SessionPersistenceService(tmp_path / "chat.db")
    yield service
    service.close()


@pytest.fixture
def store(persistence: SessionPersistenceService) -> SessionStore:
    return SessionStore(persistence)


@pytest.fixture
def client() -> FakeGenerationClient:
    return FakeGenerationClient()


@pytest.fixture
def controller(client: FakeGenerationClient, store: SessionStore, event_bus: RecordingEventBus) -> ChatSessionController:
    chat_controller = ChatSessionController(client, store, event_bus=event_bus)
    chat_controller.start_new_chat()
    return chat_controller
