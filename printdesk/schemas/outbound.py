"""
printdesk/schemas/outbound.py

Purpose: Outbound message descriptions

- TextMessage and QuickReplyMessage produced by the session handler
- Converted to Send API message objects by the transport
"""

from typing import Any, Dict, List, Literal, Union

from pydantic import BaseModel, Field

from printdesk.utils.messenger_utils import create_quick_reply_message, create_text_message


class TextMessage(BaseModel):
    kind: Literal["text"] = "text"
    body: str

    def to_send_api(self) -> Dict[str, Any]:
        return create_text_message(self.body)


class QuickReplyOption(BaseModel):
    label: str


class QuickReplyMessage(BaseModel):
    kind: Literal["quick_reply"] = "quick_reply"
    body: str
    options: List[QuickReplyOption] = Field(default_factory=list)

    @classmethod
    def from_labels(cls, body: str, labels) -> "QuickReplyMessage":
        return cls(body=body, options=[QuickReplyOption(label=label) for label in labels])

    @property
    def labels(self) -> List[str]:
        return [option.label for option in self.options]

    def to_send_api(self) -> Dict[str, Any]:
        return create_quick_reply_message(self.body, self.labels)


OutboundMessage = Union[TextMessage, QuickReplyMessage]
