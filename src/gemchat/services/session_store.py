import logging
from typing import List, Optional

from src.gemchat.models.exceptions import MessageStateError, SessionNotFoundError
from src.gemchat.models.message import GroundingMetadata, Message, Role
from src.gemchat.models.session import ChatSession, derive_title
from src.gemchat.services.session_persistence_service import SessionPersistenceService

logger = logging.getLogger(__name__)


class SessionStore:
    """
    In-memory, ordered collection of chat sessions and the single source of truth.

    All writes go through the narrow API below so the session invariants live
    in one place:
    - sessions are kept newest first,
    - messages are append-only, only the streaming tail is mutated in place,
    - at most one message per session is streaming,
    - the title is derived once, from the first user message only.

    Every mutation is written through to the persistence service.
    Readers get deep copies.
    """

    def __init__(self, persistence: Optional[SessionPersistenceService] = None):
        self.persistence = persistence
        self._sessions: List[ChatSession] = []

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    @property
    def sessions(self) -> List[ChatSession]:
        return [session.model_copy(deep=True) for session in self._sessions]

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return any(session.id == session_id for session in self._sessions)

    def get(self, session_id: str) -> Optional[ChatSession]:
        session = self._find(session_id)
        return session.model_copy(deep=True) if session else None

    def get_messages(self, session_id: str) -> List[Message]:
        session = self._find(session_id)
        if not session:
            return []
        return [message.model_copy(deep=True) for message in session.messages]

    # ------------------------------------------------------------------ #
    # Session level mutations
    # ------------------------------------------------------------------ #

    def load_from_storage(self) -> int:
        """Replace the collection with what the persistence service holds."""
        if not self.persistence:
            return 0
        loaded = self.persistence.load()
        self._sessions = sorted(loaded, key=lambda session: session.created_at, reverse=True)
        logger.info("Loaded %d chat sessions from storage", len(self._sessions))
        return len(self._sessions)

    def add_session(self, session: ChatSession) -> ChatSession:
        if session.id in self:
            raise ValueError(f"Session {session.id} already exists")
        self._sessions.insert(0, session)
        self._persist()
        return session.model_copy(deep=True)

    def remove_session(self, session_id: str) -> bool:
        before = len(self._sessions)
        self._sessions = [session for session in self._sessions if session.id != session_id]
        removed = len(self._sessions) != before
        if removed:
            # Deletions are written even when the collection is now empty.
            self._persist(force=True)
            logger.info("Deleted chat session %s", session_id)
        return removed

    # ------------------------------------------------------------------ #
    # Message level mutations
    # ------------------------------------------------------------------ #

    def append_message(self, session_id: str, message: Message) -> Message:
        session = self._require(session_id)
        if session.find_message(message.id):
            raise MessageStateError(f"Message {message.id} already exists in session {session_id}")
        if message.is_streaming:
            if message.is_error:
                raise MessageStateError("An error message cannot be streaming")
            in_flight = session.streaming_message()
            if in_flight:
                raise MessageStateError(
                    f"Session {session_id} already has in-flight message {in_flight.id}"
                )

        session.messages.append(message)
        if message.role == Role.USER and session.has_sentinel_title:
            self._title_from_first_user_message(session, message)

        self._persist()
        return message.model_copy(deep=True)

    def apply_fragment(
        self,
        session_id: str,
        message_id: str,
        text: Optional[str] = None,
        grounding_metadata: Optional[GroundingMetadata] = None,
        image: Optional[str] = None,
    ) -> Message:
        """
        Fold one streamed fragment into the in-flight message.

        Text is appended verbatim; citation metadata and the image replace
        whatever the message held before.
        """
        message = self._require_streaming(session_id, message_id)
        if text:
            message.content += text
        if grounding_metadata is not None:
            message.grounding_metadata = grounding_metadata.model_copy(deep=True)
        if image is not None:
            message.image = image
        self._persist()
        return message.model_copy(deep=True)

    def finalize_message(self, session_id: str, message_id: str) -> Message:
        """Streaming -> Finalized. The only successful terminal transition."""
        message = self._require_streaming(session_id, message_id)
        message.is_streaming = False
        self._persist()
        return message.model_copy(deep=True)

    def fail_message(self, session_id: str, message_id: str, notice: str) -> Message:
        """
        Streaming -> Errored.

        The partial content is kept, the message stops streaming and an error
        notice from the model is appended after it.

        Returns:
            The appended error message.
        """
        session = self._require(session_id)
        message = self._require_streaming(session_id, message_id)
        message.is_streaming = False
        error_message = Message(role=Role.MODEL, content=notice, is_error=True)
        session.messages.append(error_message)
        self._persist()
        return error_message.model_copy(deep=True)

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _find(self, session_id: Optional[str]) -> Optional[ChatSession]:
        if not session_id:
            return None
        for session in self._sessions:
            if session.id == session_id:
                return session
        return None

    def _require(self, session_id: str) -> ChatSession:
        session = self._find(session_id)
        if session is None:
            raise SessionNotFoundError(f"Unknown session {session_id}")
        return session

    def _require_streaming(self, session_id: str, message_id: str) -> Message:
        message = self._require(session_id).find_message(message_id)
        if message is None:
            raise MessageStateError(f"Unknown message {message_id} in session {session_id}")
        if not message.is_streaming:
            raise MessageStateError(f"Message {message_id} is no longer streaming")
        return message

    @staticmethod
    def _title_from_first_user_message(session: ChatSession, message: Message) -> None:
        first = session.first_user_message()
        if first is None or first.id != message.id:
            return
        # An attachment-only opener has no text to title with; the sentinel stays for good.
        if first.content:
            session.title = derive_title(first.content)
            logger.debug("Session %s titled '%s'", session.id, session.title)

    def _persist(self, force: bool = False) -> None:
        if not self.persistence:
            return
        if not self._sessions and not force:
            return
        self.persistence.save(self._sessions, force=force)
