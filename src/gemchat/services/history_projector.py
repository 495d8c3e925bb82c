"""
Projection of a session's messages onto the history used to seed a chat context.

Only the textual record is replayed: attachments and generated images are
left out, and error notices are dropped so they never reach the model.
"""
import logging
from typing import Iterable, List

from src.gemchat.models.history import HistoryTurn
from src.gemchat.models.message import Message

logger = logging.getLogger(__name__)


def project_history(messages: Iterable[Message]) -> List[HistoryTurn]:
    """
    Build the ordered, text-only exchange history for a message list.

    Args:
        messages: Messages of one session, in conversation order.

    Returns:
        One turn per non-error message, carrying its role and text content.
    """
    history = [
        HistoryTurn(role=message.role, text=message.content)
        for message in messages
        if not message.is_error
    ]
    logger.debug("Projected %d history turns", len(history))
    return history
