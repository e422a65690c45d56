"""Events published to the subscription hub and sent to viewers as frames."""

from typing import Any, Dict, Literal, Union

from .models import CamelModel, Message


class MessageUpdateEvent(CamelModel):
    type: Literal["message-update"] = "message-update"
    message_id: int
    content: str


class MessageCompleteEvent(CamelModel):
    type: Literal["message-complete"] = "message-complete"
    message_id: int
    message: Message


class MessageEditedEvent(CamelModel):
    type: Literal["message-edited"] = "message-edited"
    message_id: int
    message: Message


class MessageErrorEvent(CamelModel):
    type: Literal["message-error"] = "message-error"
    message_id: int
    error: str


Event = Union[MessageUpdateEvent, MessageCompleteEvent, MessageEditedEvent, MessageErrorEvent]


def to_frame(event: Event) -> Dict[str, Any]:
    """Render an event as the JSON-ready dict sent over the wire."""
    return event.model_dump(mode="json", by_alias=True)
