import logging
from typing import Any, Dict, List, Optional, Sequence

from src.gemchat.app.event_bus import EventBus
from src.gemchat.models.ai_model import AVAILABLE_MODELS, DEFAULT_MODEL_ID, AIModel, is_known_model
from src.gemchat.models.event_types import (
    ACTIVE_SESSION_CHANGED,
    MODEL_CHANGED,
    SESSIONS_CHANGED,
    STREAM_ENDED,
    STREAM_FAILED,
    STREAM_STARTED,
)
from src.gemchat.models.events import Event
from src.gemchat.models.history import HistoryTurn
from src.gemchat.models.message import Message, Role
from src.gemchat.models.session import ChatSession
from src.gemchat.services.history_projector import project_history
from src.gemchat.services.session_store import SessionStore
from src.gemchat.services.stream_merge_service import StreamMergeService
from src.providers.base import ChatContext, GenerationClient

logger = logging.getLogger(__name__)

GENERATION_ERROR_NOTICE = "Sorry, something went wrong while processing your request. Please try again."


class ChatSessionController:
    """
    Top-level orchestrator of chat sessions.

    Owns the active session id, the selected model and the conversation
    context, and drives one streamed send at a time across the whole
    application. While a send is in flight, switching sessions, starting a
    new chat, switching models and deleting the active session are rejected.

    The context is rebuilt wholesale on a new chat, a session switch, a model
    switch and after a failed send; never as a side effect of a streamed update.
    """

    def __init__(
        self,
        client: GenerationClient,
        store: SessionStore,
        event_bus: Optional[EventBus] = None,
        model_id: str = DEFAULT_MODEL_ID,
        merger: Optional[StreamMergeService] = None,
    ):
        self.client = client
        self.store = store
        self.event_bus = event_bus
        self.merger = merger or StreamMergeService(store, event_bus)
        self._selected_model_id = model_id if is_known_model(model_id) else DEFAULT_MODEL_ID
        self._active_session_id: Optional[str] = None
        self._context: Optional[ChatContext] = None
        self._is_loading = False

    # ------------------------------------------------------------------ #
    # Read access for the presentation layer
    # ------------------------------------------------------------------ #

    @property
    def sessions(self) -> List[ChatSession]:
        return self.store.sessions

    @property
    def active_session_id(self) -> Optional[str]:
        return self._active_session_id

    @property
    def messages(self) -> List[Message]:
        """Working copy of the active session's messages."""
        return self.store.get_messages(self._active_session_id) if self._active_session_id else []

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def selected_model_id(self) -> str:
        return self._selected_model_id

    @property
    def context(self) -> Optional[ChatContext]:
        return self._context

    @property
    def available_models(self) -> List[AIModel]:
        return list(AVAILABLE_MODELS)

    # ------------------------------------------------------------------ #
    # Session lifecycle
    # ------------------------------------------------------------------ #

    def start_new_chat(self) -> bool:
        """
        Clear the active session and start a blank context for the selected model.

        No session record is created until the first message is sent.
        """
        if self._is_loading:
            logger.info("Ignoring new chat request while a reply is streaming")
            return False

        previous_session_id = self._active_session_id
        self._active_session_id = None
        self.rebuild_context(self._selected_model_id, [])
        self._emit_active_session_changed(previous_session_id)
        return True

    new_chat = start_new_chat

    def select_session(self, session_id: str) -> bool:
        if self._is_loading:
            logger.info("Ignoring switch to session %s while a reply is streaming", session_id)
            return False

        if session_id not in self.store:
            logger.warning("Cannot select unknown session %s", session_id)
            return False

        previous_session_id = self._active_session_id
        self._active_session_id = session_id
        self.rebuild_context(self._selected_model_id, project_history(self.messages))
        self._emit_active_session_changed(previous_session_id)
        logger.info("Switched to session %s", session_id)
        return True

    def delete_session(self, session_id: str) -> bool:
        was_active = session_id == self._active_session_id
        if was_active and self._is_loading:
            logger.info("Ignoring deletion of session %s while its reply is streaming", session_id)
            return False

        if not self.store.remove_session(session_id):
            logger.warning("Cannot delete unknown session %s", session_id)
            return False

        self._emit_sessions_changed()
        if was_active:
            self.start_new_chat()
        return True

    def select_model(self, model_id: str) -> bool:
        if self._is_loading:
            logger.info("Ignoring model switch to %s while a reply is streaming", model_id)
            return False
        if not is_known_model(model_id):
            logger.warning("Unknown model %s", model_id)
            return False

        self._selected_model_id = model_id
        history = project_history(self.messages)
        self.rebuild_context(model_id, history)
        self._dispatch(MODEL_CHANGED, {"model_id": model_id, "history_length": len(history)})
        return True

    def rebuild_context(self, model_id: str, history: Sequence[HistoryTurn]) -> ChatContext:
        """Replace the conversation context with a fresh one seeded from history."""
        self._context = self.client.create_context(model_id, list(history))
        logger.debug("Rebuilt context for %s with %d turns", model_id, len(history))
        return self._context

    # ------------------------------------------------------------------ #
    # Sending
    # ------------------------------------------------------------------ #

    async def send_message(self, text: str, attachments: Optional[Sequence[str]] = None) -> bool:
        """
        Send a user turn and stream the reply into the active session.

        Returns:
            False when the request was rejected (nothing to send, or a reply
            is already streaming), True once the send ran to completion or
            ended with an error message.
        """
        attachments = list(attachments or [])
        if (not text.strip() and not attachments) or self._is_loading:
            return False

        self._is_loading = True
        try:
            session_id = self._ensure_active_session()
            if self._context is None:
                self.rebuild_context(self._selected_model_id, [])
            context = self._context

            self.store.append_message(
                session_id,
                Message(role=Role.USER, content=text.strip(), attachments=attachments or None),
            )
            placeholder = self.store.append_message(
                session_id,
                Message(role=Role.MODEL, content="", is_streaming=True),
            )
            self._emit_sessions_changed()
            self._dispatch(
                STREAM_STARTED,
                {"message_id": placeholder.id, "model_id": context.model_id},
                session_id=session_id,
            )

            try:
                fragments = await self.client.send(context, text, attachments)
                await self.merger.merge(session_id, placeholder.id, fragments, model_id=context.model_id)
            except Exception as exc:  # Generation failures end up as a chat message
                logger.error("Error sending message: %s", exc, exc_info=True)
                error_message = self.store.fail_message(session_id, placeholder.id, GENERATION_ERROR_NOTICE)
                # The SDK chat drops a failed turn; reseed it from what the session now records.
                self.rebuild_context(context.model_id, project_history(self.store.get_messages(session_id)))
                self._dispatch(
                    STREAM_FAILED,
                    {
                        "message_id": placeholder.id,
                        "error_message_id": error_message.id,
                        "error": str(exc),
                    },
                    session_id=session_id,
                )
            else:
                self._dispatch(STREAM_ENDED, {"message_id": placeholder.id}, session_id=session_id)

            self._emit_sessions_changed()
            return True
        finally:
            self._is_loading = False

    def _ensure_active_session(self) -> str:
        if self._active_session_id and self._active_session_id in self.store:
            return self._active_session_id

        session = self.store.add_session(ChatSession())
        self._active_session_id = session.id
        logger.info("Created chat session %s", session.id)
        self._emit_active_session_changed(None)
        return session.id

    # ------------------------------------------------------------------ #
    # Events
    # ------------------------------------------------------------------ #

    def _emit_sessions_changed(self) -> None:
        self._dispatch(SESSIONS_CHANGED, {"session_ids": [session.id for session in self.store.sessions]})

    def _emit_active_session_changed(self, previous_session_id: Optional[str]) -> None:
        self._dispatch(
            ACTIVE_SESSION_CHANGED,
            {"previous_session_id": previous_session_id, "message_count": len(self.messages)},
            session_id=self._active_session_id,
        )

    def _dispatch(self, event_type: str, payload: Dict[str, Any], session_id: Optional[str] = None) -> None:
        if not self.event_bus:
            return
        try:
            self.event_bus.dispatch(Event(event_type=event_type, session_id=session_id, payload=payload))
        except Exception:
            logger.debug("Failed to dispatch %s event", event_type, exc_info=True)
