from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class Event(BaseModel):
    """
    Data contract for everything published on the EventBus.

    Attributes:
        event_type: One of the constants in event_types.
        session_id: Session the event concerns, when there is one.
        payload: Event specific data.
    """

    event_type: str
    session_id: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)
