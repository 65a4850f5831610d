"""
Incoming update variants.

A Telegram update is reduced to exactly one of CallbackQueryUpdate,
MessageUpdate or None (nothing to handle).
"""

from dataclasses import dataclass
from typing import Optional, Union

import structlog
from telegram import Message
from telegram import Update as TelegramUpdate

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CallbackQueryUpdate:
    """Inline button press on a control panel message."""
    id: str
    chat_id: int
    message_id: int
    data: str


@dataclass(frozen=True)
class MessageUpdate:
    """Text message typed by the user."""
    chat_id: int
    text: str


IncomingUpdate = Union[CallbackQueryUpdate, MessageUpdate]


def parse_update(update: TelegramUpdate) -> Optional[IncomingUpdate]:
    """
    Convert a telegram Update into an IncomingUpdate.

    Args:
        update: Update received from getUpdates

    Returns:
        The matching variant, or None for update kinds the bot ignores
    """
    query = update.callback_query
    if query is not None:
        # Messages older than 48h arrive as InaccessibleMessage
        if not isinstance(query.message, Message):
            logger.warning("callback_without_accessible_message", update_id=update.update_id)
            return None
        return CallbackQueryUpdate(
            id=query.id,
            chat_id=query.message.chat.id,
            message_id=query.message.message_id,
            data=query.data or "",
        )

    message = update.message
    if message is not None:
        return MessageUpdate(chat_id=message.chat.id, text=message.text or "")

    logger.debug("unsupported_update_ignored", update_id=update.update_id)
    return None
