from typing import Any, Dict

from pydantic import BaseModel

from src.gemchat.models.message import Role


class HistoryTurn(BaseModel):
    """One text-only exchange turn replayed into a fresh chat context."""

    role: Role
    text: str

    def to_content(self) -> Dict[str, Any]:
        """Render as the role/parts structure generative APIs expect."""
        return {"role": self.role.value, "parts": [{"text": self.text}]}
