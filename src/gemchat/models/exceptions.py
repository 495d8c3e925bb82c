"""
Exceptions raised by the chat session layer.

Only GenerationError ever reaches the user, and then only as an error
message appended to the conversation. Everything else is a programming or
configuration error surfaced to operators through the logs.
"""
from __future__ import annotations

from typing import Optional


class GemchatError(Exception):
    """Base class for all errors raised by this package."""


class GenerationError(GemchatError):
    """
    Raised when the generation client fails while producing a reply.

    Args:
        message: Human-readable description of the error.
        model_id: Optional model identifier associated with the failure.
        cause: Optional underlying exception that triggered the failure.
    """

    def __init__(
        self,
        message: str,
        *,
        model_id: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.model_id = model_id
        self.__cause__ = cause


class ProviderConfigurationError(GemchatError):
    """
    Raised when the generation client cannot be constructed, e.g. no API key
    is configured or the SDK is not installed.
    """


class MessageStateError(GemchatError):
    """
    Raised on an invalid in-flight transition, such as merging a fragment
    into a message that is already finalized.
    """


class SessionNotFoundError(GemchatError):
    """Raised when a store operation names a session id that does not exist."""
