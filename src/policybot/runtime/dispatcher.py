"""
Update Dispatcher.

Handles one Telegram update per call: toggles a device policy when an inline
button is pressed, and (re)sends the control panel for typed messages while
keeping a single panel message per chat.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Optional

import structlog

from ..gateway.keyboards import build_keyboard
from ..gateway.updates import CallbackQueryUpdate, MessageUpdate
from ..keenetic.models import DEFAULT_POLICY, RESTRICTED_POLICY, Device
from .policy import toggle_policy

logger = structlog.get_logger(__name__)

START_COMMAND = "/start"

PANEL_PROMPT = "Choose a device:"
START_HINT = "Send /start to open the device panel."
ROUTER_UNAVAILABLE = "Router is unavailable, try again later."
TOGGLE_FAILED = "Failed to change the policy."
NOT_AUTHORIZED = "Not authorized."


def toggle_succeeded_text(mac: str, policy: str) -> str:
    return f"Policy for device {mac} changed to {policy}"


class UpdateDispatcher:
    """Route a single update to the callback or message handler."""

    def __init__(
        self,
        router,
        chat,
        sessions,
        restricted_policy: str = RESTRICTED_POLICY,
        allowed_chat_ids: Optional[Iterable[int]] = None,
    ):
        """
        Initialize UpdateDispatcher.

        Args:
            router: KeeneticClient (authenticated)
            chat: TelegramGateway
            sessions: SessionStore holding the last panel message per chat
            restricted_policy: Policy id toggled on and off
            allowed_chat_ids: Chats allowed to use the bot; empty allows all
        """
        self.router = router
        self.chat = chat
        self.sessions = sessions
        self.restricted_policy = restricted_policy
        self.allowed_chat_ids = set(allowed_chat_ids or [])

    async def handle(self) -> None:
        """Fetch and handle at most one pending update."""
        update = await self.chat.get_update()
        if update is None:
            return

        logger.info(
            "update_received",
            kind=type(update).__name__,
            chat_id=update.chat_id
        )

        if self.allowed_chat_ids and update.chat_id not in self.allowed_chat_ids:
            logger.warning("unauthorized_chat_attempt", chat_id=update.chat_id)
            if isinstance(update, CallbackQueryUpdate):
                await self.chat.answer_callback_query(update.id, NOT_AUTHORIZED, show_alert=True)
            return

        devices = await self.router.get_devices()
        if devices is None:
            await self._report_router_unavailable(update)
            return
        fav_devices = self.router.get_fav_devices(devices)

        if isinstance(update, CallbackQueryUpdate):
            await self.handle_callback_query(update, fav_devices)
        elif isinstance(update, MessageUpdate):
            await self.handle_message(update, fav_devices)

    async def handle_callback_query(
        self,
        callback_query: CallbackQueryUpdate,
        fav_devices: Mapping[str, Device],
    ) -> None:
        """
        Toggle the pressed device's policy, redraw the panel, acknowledge.

        The keyboard shows the new policy even when the router rejects it;
        only the acknowledgement text reports the failure.
        """
        mac = callback_query.data
        device = fav_devices.get(mac)
        current_policy = device.policy if device is not None else DEFAULT_POLICY
        new_policy = toggle_policy(current_policy, self.restricted_policy)

        if device is None:
            logger.warning("callback_for_unknown_device", mac=mac, chat_id=callback_query.chat_id)

        success = await self.router.set_policy_device(mac, new_policy)

        logger.info(
            "policy_toggled",
            chat_id=callback_query.chat_id,
            mac=mac,
            old_policy=current_policy,
            new_policy=new_policy,
            success=success
        )

        keyboard = build_keyboard(
            list(fav_devices.values()),
            {mac: new_policy},
            self.restricted_policy,
        )
        await self.chat.edit_message_reply_markup(
            callback_query.chat_id,
            callback_query.message_id,
            keyboard,
        )

        text = toggle_succeeded_text(mac, new_policy) if success else TOGGLE_FAILED
        await self.chat.answer_callback_query(callback_query.id, text, show_alert=True)

    async def handle_message(
        self,
        message: MessageUpdate,
        fav_devices: Mapping[str, Device],
    ) -> None:
        """Replace the chat's panel: delete the previous one, send a new one."""
        if message.text == START_COMMAND:
            keyboard = build_keyboard(list(fav_devices.values()), None, self.restricted_policy)
            await self._replace_panel(message.chat_id, PANEL_PROMPT, keyboard)
        else:
            await self._replace_panel(message.chat_id, START_HINT)

    async def _replace_panel(self, chat_id: int, text: str, keyboard=None) -> None:
        session = await self.sessions.get_session(chat_id)
        if session.last_message_id:
            await self.chat.delete_message(chat_id, session.last_message_id)

        new_message_id = await self.chat.send_message(chat_id, text, keyboard)
        if new_message_id is None:
            logger.warning("panel_not_sent", chat_id=chat_id)
            return

        await self.sessions.update_storage(chat_id, {"last_message_id": new_message_id})
        logger.info(
            "panel_sent",
            chat_id=chat_id,
            message_id=new_message_id,
            replaced_message_id=session.last_message_id,
            with_keyboard=keyboard is not None
        )

    async def _report_router_unavailable(self, update) -> None:
        logger.warning("router_unavailable", chat_id=update.chat_id)
        if isinstance(update, CallbackQueryUpdate):
            await self.chat.answer_callback_query(update.id, TOGGLE_FAILED, show_alert=True)
        elif isinstance(update, MessageUpdate):
            await self._replace_panel(update.chat_id, ROUTER_UNAVAILABLE)
