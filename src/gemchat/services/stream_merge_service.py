import logging
from typing import AsyncIterable, Optional

from src.gemchat.app.event_bus import EventBus
from src.gemchat.models.event_types import MESSAGE_UPDATED
from src.gemchat.models.events import Event
from src.gemchat.models.exceptions import GenerationError, MessageStateError
from src.gemchat.models.fragment import Fragment
from src.gemchat.models.message import Message
from src.gemchat.services.session_store import SessionStore

logger = logging.getLogger(__name__)


class StreamMergeService:
    """
    Folds a streamed reply into the single in-flight message of a session.

    Fragments are applied one by one, in arrival order, as they are pulled
    from the sequence; nothing is buffered or reordered. The message moves
    Streaming -> Finalized when the sequence is exhausted. A failure while
    pulling stops consumption, leaves the merged state in place and is
    re-raised as GenerationError; the caller moves the message to Errored.
    """

    def __init__(self, store: SessionStore, event_bus: Optional[EventBus] = None):
        self.store = store
        self.event_bus = event_bus

    async def merge(
        self,
        session_id: str,
        message_id: str,
        fragments: AsyncIterable[Fragment],
        model_id: Optional[str] = None,
    ) -> Message:
        """
        Consume the fragment sequence and finalize the in-flight message.

        Args:
            session_id: Session owning the in-flight message.
            message_id: The in-flight message.
            fragments: Lazy, single-use sequence produced by the generation client.
            model_id: Model producing the reply, for error reporting.

        Returns:
            The finalized message.

        Raises:
            GenerationError: If pulling the next fragment failed.
            MessageStateError: If the message is not streaming.
        """
        merged = 0
        try:
            async for fragment in fragments:
                message = self.apply(session_id, message_id, fragment)
                merged += 1
                self._dispatch_update(session_id, message, fragment)
        except (MessageStateError, GenerationError):
            raise
        except Exception as exc:
            logger.error(
                "Generation failed after %d fragments for message %s: %s",
                merged,
                message_id,
                exc,
            )
            raise GenerationError(
                f"Generation failed after {merged} fragments",
                model_id=model_id,
                cause=exc,
            ) from exc

        logger.debug("Merged %d fragments into message %s", merged, message_id)
        return self.store.finalize_message(session_id, message_id)

    def apply(self, session_id: str, message_id: str, fragment: Fragment) -> Message:
        """Apply a single fragment to the in-flight message."""
        image = fragment.inline_image.to_data_uri() if fragment.inline_image else None
        return self.store.apply_fragment(
            session_id,
            message_id,
            text=fragment.text,
            grounding_metadata=fragment.sources,
            image=image,
        )

    def _dispatch_update(self, session_id: str, message: Message, fragment: Fragment) -> None:
        if not self.event_bus:
            return
        try:
            self.event_bus.dispatch(
                Event(
                    event_type=MESSAGE_UPDATED,
                    session_id=session_id,
                    payload={
                        "message_id": message.id,
                        "text_delta": fragment.text or "",
                        "has_image": message.image is not None,
                        "has_sources": message.grounding_metadata is not None,
                    },
                )
            )
        except Exception:
            logger.debug("Failed to dispatch MESSAGE_UPDATED event", exc_info=True)
