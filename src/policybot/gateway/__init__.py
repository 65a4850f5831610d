"""
Telegram Gateway module.

Receives updates from the Telegram Bot API, renders the device keyboard
and performs message operations for the dispatcher.
"""

from .keyboards import build_keyboard
from .telegram_client import TelegramGateway
from .updates import CallbackQueryUpdate, IncomingUpdate, MessageUpdate, parse_update

__all__ = [
    "build_keyboard",
    "TelegramGateway",
    "CallbackQueryUpdate",
    "IncomingUpdate",
    "MessageUpdate",
    "parse_update",
]
