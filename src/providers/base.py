from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, List, Sequence

from src.gemchat.models.fragment import Fragment
from src.gemchat.models.history import HistoryTurn


@dataclass
class ChatContext:
    """
    Opaque conversation context owned by a generation client.

    Attributes:
        model_id: Model the context talks to.
        history: Turns the context was seeded with.
        handle: Client specific chat object.
    """

    model_id: str
    history: List[HistoryTurn] = field(default_factory=list)
    handle: Any = None


class GenerationClient(ABC):
    """
    Abstract Base Class for generative model clients.
    This is the only contract the chat session layer relies on.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """The official name of the provider (e.g., 'Google')."""
        pass

    @abstractmethod
    def create_context(self, model_id: str, history: Sequence[HistoryTurn]) -> ChatContext:
        """
        Initializes a conversation context for the model, seeded with history.

        Args:
            model_id: The model identifier.
            history: Ordered text-only turns to replay.

        Returns:
            A fresh context. Previous contexts are never patched in place.
        """
        pass

    @abstractmethod
    async def send(
        self,
        context: ChatContext,
        text: str,
        attachments: Sequence[str],
    ) -> AsyncIterator[Fragment]:
        """
        Sends one user turn and returns the streamed reply.

        Args:
            context: Context created by create_context.
            text: Plain text of the user turn.
            attachments: Image attachments as data-URIs.

        Returns:
            A lazy, finite, single-use async iterator of fragments. Transport
            or service failures are raised either here or while iterating,
            never retried.
        """
        pass
