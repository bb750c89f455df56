"""
Parsing of inbound Telegram updates.

Only the fields the review workflow reads are kept. Field names follow the
Bot API JSON (callback_query, message, chat, from, ...).
"""

from dataclasses import dataclass
from typing import Any, Optional

from util.logging_util import setup_logger

logger = setup_logger(__name__)


@dataclass(frozen=True)
class InboundMessage:
    message_id: Optional[int]
    chat_id: Optional[int]
    from_id: Optional[int]
    text: Optional[str]


@dataclass(frozen=True)
class InboundCallback:
    id: Optional[str]
    data: Optional[str]
    from_id: Optional[int]
    message: Optional[InboundMessage]

    @property
    def chat_id(self) -> Optional[int]:
        """Chat the button was pressed in, falling back to the presser."""
        if self.message is not None and self.message.chat_id is not None:
            return self.message.chat_id
        return self.from_id


@dataclass(frozen=True)
class InboundUpdate:
    update_id: Optional[int]
    callback_query: Optional[InboundCallback] = None
    message: Optional[InboundMessage] = None


def _get_id(obj: Any) -> Optional[int]:
    if not isinstance(obj, dict):
        return None
    value = obj.get("id")
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _parse_message(data: Any) -> Optional[InboundMessage]:
    if not isinstance(data, dict):
        return None
    message_id = data.get("message_id")
    if not isinstance(message_id, int) or isinstance(message_id, bool):
        message_id = None
    text = data.get("text")
    if not isinstance(text, str):
        text = None
    return InboundMessage(
        message_id=message_id,
        chat_id=_get_id(data.get("chat")),
        from_id=_get_id(data.get("from")),
        text=text,
    )


def _parse_callback(data: Any) -> Optional[InboundCallback]:
    if not isinstance(data, dict):
        return None
    callback_id = data.get("id")
    callback_data = data.get("data")
    return InboundCallback(
        id=str(callback_id) if callback_id is not None else None,
        data=callback_data if isinstance(callback_data, str) else None,
        from_id=_get_id(data.get("from")),
        message=_parse_message(data.get("message")),
    )


def parse_update(payload: Any) -> Optional[InboundUpdate]:
    """Parse an update envelope.

    Returns None when the payload is not a JSON object.
    """
    if not isinstance(payload, dict):
        logger.warning(f"Ignoring update payload of type {type(payload).__name__}")
        return None

    update_id = payload.get("update_id")
    if not isinstance(update_id, int) or isinstance(update_id, bool):
        update_id = None

    return InboundUpdate(
        update_id=update_id,
        callback_query=_parse_callback(payload.get("callback_query")),
        message=_parse_message(payload.get("message")),
    )
