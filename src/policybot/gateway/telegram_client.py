"""
Telegram Bot Client.

Fetches one update at a time and performs the message operations the
dispatcher needs. Telegram errors are logged and reported as return values.
"""

import asyncio
from typing import Optional

import structlog
from telegram import Bot, InlineKeyboardMarkup
from telegram.error import TelegramError

from .updates import IncomingUpdate, parse_update

logger = structlog.get_logger(__name__)

ALLOWED_UPDATES = ["message", "callback_query"]


class TelegramGateway:
    """Async Telegram Bot API access for the control panel."""

    def __init__(
        self,
        token: str = "",
        poll_timeout: int = 30,
        error_backoff: float = 5.0,
        bot: Optional[Bot] = None,
    ):
        """
        Initialize TelegramGateway.

        Args:
            token: Telegram bot token from @BotFather
            poll_timeout: Long polling timeout for getUpdates, in seconds
            error_backoff: Pause after a failed getUpdates call, in seconds
            bot: Optional Bot override (used by tests)
        """
        self.bot = bot or Bot(token)
        self.poll_timeout = poll_timeout
        self.error_backoff = error_backoff
        self._offset: Optional[int] = None

    async def start(self):
        """Initialize the bot."""
        logger.info("telegram_bot_starting")
        await self.bot.initialize()
        logger.info("telegram_bot_started", username=self.bot.username)

    async def stop(self):
        """Shut the bot down."""
        logger.info("telegram_bot_stopping")
        await self.bot.shutdown()
        logger.info("telegram_bot_stopped")

    async def get_update(self) -> Optional[IncomingUpdate]:
        """
        Fetch at most one pending update.

        The offset moves past the fetched update before it is handled,
        so every update is delivered at most once.

        Returns:
            Parsed update, or None when nothing is pending
        """
        try:
            updates = await self.bot.get_updates(
                offset=self._offset,
                limit=1,
                timeout=self.poll_timeout,
                allowed_updates=ALLOWED_UPDATES,
            )
        except TelegramError as e:
            logger.error(
                "get_updates_error",
                error=str(e),
                error_type=type(e).__name__
            )
            await asyncio.sleep(self.error_backoff)
            return None

        if not updates:
            return None

        update = updates[0]
        self._offset = update.update_id + 1
        logger.debug("telegram_update_fetched", update_id=update.update_id)
        return parse_update(update)

    async def send_message(
        self,
        chat_id: int,
        text: str,
        keyboard: Optional[InlineKeyboardMarkup] = None,
    ) -> Optional[int]:
        """
        Send a message, optionally with an inline keyboard.

        Args:
            chat_id: Telegram chat ID
            text: Message text
            keyboard: Optional inline keyboard

        Returns:
            Id of the sent message, or None if sending failed
        """
        try:
            message = await self.bot.send_message(
                chat_id=chat_id,
                text=text,
                reply_markup=keyboard,
            )
        except TelegramError as e:
            logger.error(
                "send_message_error",
                chat_id=chat_id,
                error=str(e),
                error_type=type(e).__name__
            )
            return None

        logger.info("message_sent", chat_id=chat_id, message_id=message.message_id)
        return message.message_id

    async def edit_message_reply_markup(
        self,
        chat_id: int,
        message_id: int,
        keyboard: InlineKeyboardMarkup,
    ) -> bool:
        """
        Replace the inline keyboard of an existing message.

        Returns:
            True if successful, False otherwise
        """
        try:
            await self.bot.edit_message_reply_markup(
                chat_id=chat_id,
                message_id=message_id,
                reply_markup=keyboard,
            )
            return True
        except TelegramError as e:
            logger.warning(
                "edit_reply_markup_error",
                chat_id=chat_id,
                message_id=message_id,
                error=str(e),
                error_type=type(e).__name__
            )
            return False

    async def delete_message(self, chat_id: int, message_id: int) -> bool:
        """
        Delete a message. Best-effort: already deleted messages are not an error.

        Returns:
            True if the message was deleted, False otherwise
        """
        try:
            await self.bot.delete_message(chat_id=chat_id, message_id=message_id)
            logger.info("message_deleted", chat_id=chat_id, message_id=message_id)
            return True
        except TelegramError as e:
            logger.info(
                "delete_message_skipped",
                chat_id=chat_id,
                message_id=message_id,
                error=str(e),
                error_type=type(e).__name__
            )
            return False

    async def answer_callback_query(
        self,
        callback_query_id: str,
        text: str,
        show_alert: bool = False,
    ) -> bool:
        """
        Acknowledge an inline button press.

        Returns:
            True if successful, False otherwise
        """
        try:
            await self.bot.answer_callback_query(
                callback_query_id=callback_query_id,
                text=text,
                show_alert=show_alert,
            )
            return True
        except TelegramError as e:
            logger.warning(
                "answer_callback_error",
                callback_query_id=callback_query_id,
                error=str(e),
                error_type=type(e).__name__
            )
            return False
