from typing import Optional

from pydantic import BaseModel

from src.gemchat.models.message import GroundingMetadata


class InlineImage(BaseModel):
    """Raw image bytes (base64 text) returned inline by the model."""

    mime_type: str
    data: str

    def to_data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"


class Fragment(BaseModel):
    """
    One element of a streamed reply.

    Any combination of the three parts may be present, including none.
    """

    text: Optional[str] = None
    sources: Optional[GroundingMetadata] = None
    inline_image: Optional[InlineImage] = None

    @property
    def is_empty(self) -> bool:
        return self.text is None and self.sources is None and self.inline_image is None
