"""
printdesk/utils/messenger_utils.py

Purpose: Messenger message builders

- Constructs text and quick-reply message bodies for the Send API
- Applies platform limits (option count, title length, text length)
"""

from typing import Any, Dict, List, Optional

from printdesk.utils.constants import (
    MAX_QUICK_REPLIES,
    MAX_QUICK_REPLY_TITLE_LENGTH,
    MAX_TEXT_LENGTH,
)


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 1] + "…"


def create_text_message(text: str, metadata: Optional[str] = None) -> Dict[str, Any]:
    """
    Creates a simple text message body.

    Args:
        text: Message text (truncated to the platform limit)
        metadata: Optional developer metadata echoed back by Messenger

    Returns:
        Send API "message" object
    """
    message = {"text": truncate(text, MAX_TEXT_LENGTH)}
    if metadata:
        message["metadata"] = metadata
    return message


def create_quick_reply_message(
    text: str,
    options: List[str],
    metadata: Optional[str] = None
) -> Dict[str, Any]:
    """
    Creates a message with quick reply buttons.

    The visible title is truncated to the platform limit; the payload always
    carries the full option label so it can be matched on the way back.

    Args:
        text: Prompt text
        options: Option labels, in display order (max 13)
        metadata: Optional developer metadata

    Returns:
        Send API "message" object

    Example:
        create_quick_reply_message("Escolha:", ["Próximo", "Recomeçar"])
    """
    message = create_text_message(text, metadata)
    message["quick_replies"] = [
        {
            "content_type": "text",
            "title": truncate(label, MAX_QUICK_REPLY_TITLE_LENGTH),
            "payload": label
        }
        for label in options[:MAX_QUICK_REPLIES]
    ]
    return message


def create_send_request(recipient_id: str, message: Dict[str, Any]) -> Dict[str, Any]:
    """Wraps a message object into a Send API request body."""
    return {
        "recipient": {"id": recipient_id},
        "messaging_type": "RESPONSE",
        "message": message
    }
