import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Role(str, Enum):
    USER = "user"
    MODEL = "model"


class GroundingWebSource(BaseModel):
    """A single web page cited by a grounded (search-augmented) answer."""

    uri: str
    title: str = ""


class GroundingChunk(BaseModel):
    web: Optional[GroundingWebSource] = None


class GroundingMetadata(BaseModel):
    """Citation sources attached to a model reply, stored exactly as received."""

    model_config = ConfigDict(populate_by_name=True)

    grounding_chunks: List[GroundingChunk] = Field(default_factory=list, alias="groundingChunks")

    @property
    def web_sources(self) -> List[GroundingWebSource]:
        return [chunk.web for chunk in self.grounding_chunks if chunk.web is not None]


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


class Message(BaseModel):
    """
    One turn in a conversation.

    Attributes:
        id: Identifier unique within the owning session.
        role: Author of the turn.
        content: Accumulated text. Only grows, and only while is_streaming is set.
        timestamp: Creation instant (timezone aware, UTC).
        is_streaming: True while response fragments are still being merged.
        is_error: True for the synthesized notice appended after a failed send.
        image: Data-URI of an image generated by the model.
        attachments: Data-URIs of images supplied by the user at creation time.
        grounding_metadata: Web citations, replaced wholesale by newer fragments.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=_new_id)
    role: Role
    content: str = ""
    timestamp: datetime = Field(default_factory=_utc_now)
    is_streaming: bool = Field(default=False, alias="isStreaming")
    is_error: bool = Field(default=False, alias="isError")
    image: Optional[str] = None
    attachments: Optional[List[str]] = None
    grounding_metadata: Optional[GroundingMetadata] = Field(default=None, alias="groundingMetadata")

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value):
        # Numbers are epoch milliseconds.
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        return value

    @field_validator("timestamp")
    @classmethod
    def _ensure_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def is_finalized(self) -> bool:
        return not self.is_streaming
