import logging
from typing import Callable, Dict, List

from PySide6.QtCore import QObject, Signal

from src.gemchat.models.events import Event

logger = logging.getLogger(__name__)


class EventBusSignaller(QObject):
    """
    A QObject to emit signals on the thread that owns the bus.
    """
    signal = Signal(Event)


class EventBus:
    """
    Decoupled notification channel between the chat session layer and a
    presentation layer. Callbacks run on the thread that created the bus,
    so a front end never sees state changes from a foreign thread.
    """
    def __init__(self):
        self._subscribers: Dict[str, List[Callable[[Event], None]]] = {}
        self._signaller = EventBusSignaller()
        self._signaller.signal.connect(self._handle_event)

    def subscribe(self, event_type: str, callback: Callable[[Event], None]) -> None:
        """
        Subscribe a callback function to a specific event type.

        Args:
            event_type: The type of event to subscribe to.
            callback: The function to call when the event is dispatched.
        """
        self._subscribers.setdefault(event_type, []).append(callback)
        logger.debug("Subscribed %s to event '%s'", getattr(callback, "__name__", callback), event_type)

    def unsubscribe(self, event_type: str, callback: Callable[[Event], None]) -> None:
        callbacks = self._subscribers.get(event_type, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def dispatch(self, event: Event) -> None:
        """
        Dispatch an event to all subscribed callbacks through the signaller.

        Args:
            event: The Event object to dispatch.
        """
        logger.debug("Dispatching event '%s' for session %s", event.event_type, event.session_id)
        self._signaller.signal.emit(event)

    def _handle_event(self, event: Event) -> None:
        for callback in list(self._subscribers.get(event.event_type, [])):
            try:
                callback(event)
            except Exception:
                logger.error(
                    "Error in callback %s for event '%s'",
                    getattr(callback, "__name__", callback),
                    event.event_type,
                    exc_info=True,
                )
