"""
printdesk/schemas/messenger.py

Purpose: Messenger webhook payload schemas and parsers

- Validates incoming webhook deliveries (object="page")
- Normalizes each messaging event into an InboundEvent
- Ensures predictable request handling
"""

from pydantic import BaseModel, Field, ValidationError
from typing import Any, List, Optional
from datetime import datetime

from printdesk.core.exceptions import MalformedEvent


class Participant(BaseModel):
    id: Optional[str] = None


class QuickReply(BaseModel):
    payload: str


class Attachment(BaseModel):
    type: Optional[str] = None
    payload: Optional[Any] = None


class Message(BaseModel):
    """
    A message object inside a messaging event.
    A message carries text or attachments, not both.
    """
    mid: Optional[str] = None
    text: Optional[str] = None
    is_echo: bool = False
    app_id: Optional[int] = None
    metadata: Optional[str] = None
    quick_reply: Optional[QuickReply] = None
    attachments: List[Attachment] = Field(default_factory=list)


class Optin(BaseModel):
    ref: Optional[str] = None


class MessagingEvent(BaseModel):
    sender: Participant = Field(default_factory=Participant)
    recipient: Participant = Field(default_factory=Participant)
    timestamp: Optional[int] = None
    message: Optional[Message] = None
    optin: Optional[Optin] = None


class PageEntry(BaseModel):
    """
    Messaging events are kept raw and validated one at a time
    (see load_messaging_event).
    """
    id: Optional[str] = None
    time: Optional[int] = None
    messaging: List[Any] = Field(default_factory=list)


class WebhookPayload(BaseModel):
    """
    Messenger webhook delivery. May batch several entries and events.

    Example:
    {
        "object": "page",
        "entry": [{
            "id": "PAGE_ID",
            "time": 1458692752478,
            "messaging": [{
                "sender": {"id": "USER_ID"},
                "recipient": {"id": "PAGE_ID"},
                "timestamp": 1458692752478,
                "message": {"mid": "mid.1457764197618:41d102a3e1ae206a38", "text": "hello"}
            }]
        }]
    }
    """
    object: str
    entry: List[PageEntry] = Field(default_factory=list)

    @property
    def is_page_subscription(self) -> bool:
        return self.object == "page"

    def events(self) -> List[Any]:
        return [event for entry in self.entry for event in entry.messaging]


class InboundEvent(BaseModel):
    """
    Normalized user turn handed to the dialogue session handler.
    """
    external_id: str = Field(..., description="Sender PSID")
    recipient_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    input_token: Optional[str] = Field(None, description="Quick-reply payload or text")
    has_attachment: bool = False
    is_echo: bool = False
    message_id: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.input_token and not self.has_attachment


def load_messaging_event(raw: Any) -> MessagingEvent:
    """
    Validates one raw messaging event from a delivery.

    Raises:
        MalformedEvent: If the event does not have the Messenger shape
    """
    try:
        return MessagingEvent.model_validate(raw)
    except ValidationError as e:
        sender = raw.get("sender") if isinstance(raw, dict) else None
        raise MalformedEvent(
            "Messaging event failed validation",
            details={
                "external_id": sender.get("id") if isinstance(sender, dict) else None,
                "errors": e.error_count(),
            }
        ) from e


def parse_messaging_event(event: MessagingEvent) -> InboundEvent:
    """
    Normalizes a Messenger messaging event.

    The quick-reply payload wins over the text (Messenger sends both when a
    quick reply is tapped).

    Raises:
        MalformedEvent: If the event has no sender id or no message
    """
    if not event.sender.id:
        raise MalformedEvent("Messaging event without sender id")
    if event.message is None:
        raise MalformedEvent(
            "Messaging event without message",
            details={"external_id": event.sender.id}
        )

    message = event.message

    if message.quick_reply is not None:
        input_token = message.quick_reply.payload
    else:
        input_token = message.text

    timestamp = (
        datetime.utcfromtimestamp(event.timestamp / 1000)
        if event.timestamp
        else datetime.utcnow()
    )

    return InboundEvent(
        external_id=event.sender.id,
        recipient_id=event.recipient.id,
        timestamp=timestamp,
        input_token=input_token,
        has_attachment=bool(message.attachments),
        is_echo=message.is_echo,
        message_id=message.mid,
    )
