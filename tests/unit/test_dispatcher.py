"""
Unit tests for UpdateDispatcher.

Tests callback toggling, control panel replacement and failure containment.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from policybot.gateway.updates import CallbackQueryUpdate, MessageUpdate
from policybot.keenetic.models import Device
from policybot.persistence.sessions import ChatSession
from policybot.runtime.dispatcher import (
    NOT_AUTHORIZED,
    PANEL_PROMPT,
    ROUTER_UNAVAILABLE,
    START_HINT,
    TOGGLE_FAILED,
    UpdateDispatcher,
)

LAPTOP = Device(mac="AA:BB", name="Laptop", policy="default")
PHONE = Device(mac="CC:DD", name="Phone", policy="Policy0")


def _rows(markup):
    return [[(button.text, button.callback_data) for button in row] for row in markup.inline_keyboard]


class TestUpdateDispatcher:

    @pytest.fixture
    def devices(self):
        return [LAPTOP, PHONE]

    @pytest.fixture
    def router(self, devices):
        """Create mock KeeneticClient."""
        router = MagicMock()
        router.get_devices = AsyncMock(return_value=devices)
        router.get_fav_devices = MagicMock(side_effect=lambda ds: {d.mac: d for d in ds})
        router.set_policy_device = AsyncMock(return_value=True)
        return router

    @pytest.fixture
    def chat(self):
        """Create mock TelegramGateway."""
        chat = AsyncMock()
        chat.get_update.return_value = None
        chat.send_message.return_value = 200
        chat.delete_message.return_value = True
        return chat

    @pytest.fixture
    def sessions(self):
        """Create mock SessionStore."""
        sessions = AsyncMock()
        sessions.get_session.side_effect = lambda chat_id: ChatSession(chat_id=chat_id)
        return sessions

    @pytest.fixture
    def dispatcher(self, router, chat, sessions):
        return UpdateDispatcher(router=router, chat=chat, sessions=sessions)

    # handle()

    @pytest.mark.asyncio
    async def test_no_pending_update_is_noop(self, dispatcher, router, chat):
        await dispatcher.handle()

        router.get_devices.assert_not_called()
        chat.send_message.assert_not_called()
        chat.answer_callback_query.assert_not_called()

    @pytest.mark.asyncio
    async def test_devices_fetched_fresh_per_update(self, dispatcher, router, chat):
        chat.get_update.return_value = MessageUpdate(chat_id=1, text="/start")

        await dispatcher.handle()
        await dispatcher.handle()

        assert router.get_devices.call_count == 2
        assert router.get_fav_devices.call_count == 2

    # Callback queries

    @pytest.mark.asyncio
    async def test_callback_toggles_default_to_restricted(self, dispatcher, router, chat):
        """Pressing a default device restricts it and redraws the panel."""
        chat.get_update.return_value = CallbackQueryUpdate(
            id="cb-1", chat_id=1, message_id=50, data="AA:BB"
        )

        await dispatcher.handle()

        router.set_policy_device.assert_called_once_with("AA:BB", "Policy0")

        chat.edit_message_reply_markup.assert_called_once()
        chat_id, message_id, keyboard = chat.edit_message_reply_markup.call_args.args
        assert (chat_id, message_id) == (1, 50)
        assert _rows(keyboard) == [
            [("Laptop (🟢)", "AA:BB")],
            [("Phone (🟢)", "CC:DD")],
        ]

        chat.answer_callback_query.assert_called_once()
        callback_id, text = chat.answer_callback_query.call_args.args
        assert callback_id == "cb-1"
        assert "AA:BB" in text
        assert "Policy0" in text
        assert chat.answer_callback_query.call_args.kwargs["show_alert"] is True

    @pytest.mark.asyncio
    async def test_callback_toggles_restricted_to_default(self, dispatcher, router, chat):
        chat.get_update.return_value = CallbackQueryUpdate(
            id="cb-2", chat_id=1, message_id=50, data="CC:DD"
        )

        await dispatcher.handle()

        router.set_policy_device.assert_called_once_with("CC:DD", "default")
        keyboard = chat.edit_message_reply_markup.call_args.args[2]
        assert _rows(keyboard)[1] == [("Phone (⚪)", "CC:DD")]
        assert "default" in chat.answer_callback_query.call_args.args[1]

    @pytest.mark.asyncio
    async def test_callback_router_failure_still_redraws(self, dispatcher, router, chat):
        """Keyboard shows the attempted policy; the alert reports the failure."""
        router.set_policy_device.return_value = False
        chat.get_update.return_value = CallbackQueryUpdate(
            id="cb-3", chat_id=1, message_id=50, data="AA:BB"
        )

        await dispatcher.handle()

        keyboard = chat.edit_message_reply_markup.call_args.args[2]
        assert _rows(keyboard)[0] == [("Laptop (🟢)", "AA:BB")]
        chat.answer_callback_query.assert_called_once_with("cb-3", TOGGLE_FAILED, show_alert=True)

    @pytest.mark.asyncio
    async def test_callback_unknown_mac_toggles_from_default(self, dispatcher, router, chat):
        chat.get_update.return_value = CallbackQueryUpdate(
            id="cb-4", chat_id=1, message_id=50, data="ZZ:ZZ"
        )

        await dispatcher.handle()

        router.set_policy_device.assert_called_once_with("ZZ:ZZ", "Policy0")
        keyboard = chat.edit_message_reply_markup.call_args.args[2]
        assert _rows(keyboard) == [
            [("Laptop (⚪)", "AA:BB")],
            [("Phone (🟢)", "CC:DD")],
        ]
        chat.answer_callback_query.assert_called_once()

    @pytest.mark.asyncio
    async def test_callback_call_order(self, dispatcher, router, chat):
        """Mutation precedes redraw, which precedes acknowledgement."""
        calls = []
        router.set_policy_device.side_effect = lambda *a: calls.append("set_policy") or True
        chat.edit_message_reply_markup.side_effect = lambda *a: calls.append("edit") or True
        chat.answer_callback_query.side_effect = lambda *a, **kw: calls.append("answer") or True
        chat.get_update.return_value = CallbackQueryUpdate(
            id="cb-5", chat_id=1, message_id=50, data="AA:BB"
        )

        await dispatcher.handle()

        assert calls == ["set_policy", "edit", "answer"]

    @pytest.mark.asyncio
    async def test_callback_does_not_touch_sessions(self, dispatcher, chat, sessions):
        chat.get_update.return_value = CallbackQueryUpdate(
            id="cb-6", chat_id=1, message_id=50, data="AA:BB"
        )

        await dispatcher.handle()

        sessions.get_session.assert_not_called()
        sessions.update_storage.assert_not_called()
        chat.send_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_custom_restricted_policy(self, router, chat, sessions):
        dispatcher = UpdateDispatcher(router, chat, sessions, restricted_policy="Policy2")
        chat.get_update.return_value = CallbackQueryUpdate(
            id="cb-7", chat_id=1, message_id=50, data="CC:DD"
        )

        await dispatcher.handle()

        # Phone carries Policy0, which is not restricted under this config
        router.set_policy_device.assert_called_once_with("CC:DD", "Policy2")

    # Messages

    @pytest.mark.asyncio
    async def test_start_sends_panel_and_records_it(self, router, chat, sessions):
        router.get_devices.return_value = [LAPTOP]
        dispatcher = UpdateDispatcher(router, chat, sessions)
        chat.get_update.return_value = MessageUpdate(chat_id=1, text="/start")

        await dispatcher.handle()

        chat.delete_message.assert_not_called()
        chat.send_message.assert_called_once()
        chat_id, text, keyboard = chat.send_message.call_args.args
        assert (chat_id, text) == (1, PANEL_PROMPT)
        assert _rows(keyboard) == [[("Laptop (⚪)", "AA:BB")]]
        sessions.update_storage.assert_called_once_with(1, {"last_message_id": 200})

    @pytest.mark.asyncio
    async def test_other_text_sends_hint_and_deletes_previous(self, dispatcher, chat, sessions):
        sessions.get_session.side_effect = None
        sessions.get_session.return_value = ChatSession(chat_id=1, last_message_id=150)
        chat.get_update.return_value = MessageUpdate(chat_id=1, text="hello")

        await dispatcher.handle()

        chat.delete_message.assert_called_once_with(1, 150)
        chat.send_message.assert_called_once_with(1, START_HINT, None)
        sessions.update_storage.assert_called_once_with(1, {"last_message_id": 200})

    @pytest.mark.asyncio
    async def test_delete_failure_does_not_abort(self, dispatcher, chat, sessions):
        sessions.get_session.side_effect = None
        sessions.get_session.return_value = ChatSession(chat_id=1, last_message_id=150)
        chat.delete_message.return_value = False
        chat.get_update.return_value = MessageUpdate(chat_id=1, text="/start")

        await dispatcher.handle()

        chat.send_message.assert_called_once()
        sessions.update_storage.assert_called_once_with(1, {"last_message_id": 200})

    @pytest.mark.asyncio
    async def test_failed_send_leaves_session_untouched(self, dispatcher, chat, sessions):
        chat.send_message.return_value = None
        chat.get_update.return_value = MessageUpdate(chat_id=1, text="/start")

        await dispatcher.handle()

        sessions.update_storage.assert_not_called()

    @pytest.mark.asyncio
    async def test_session_read_once_per_message(self, dispatcher, chat, sessions):
        chat.get_update.return_value = MessageUpdate(chat_id=1, text="/start")

        await dispatcher.handle()

        sessions.get_session.assert_called_once_with(1)

    # Allowlist

    @pytest.mark.asyncio
    async def test_unauthorized_message_ignored(self, router, chat, sessions):
        dispatcher = UpdateDispatcher(router, chat, sessions, allowed_chat_ids=[99])
        chat.get_update.return_value = MessageUpdate(chat_id=1, text="/start")

        await dispatcher.handle()

        router.get_devices.assert_not_called()
        chat.send_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_unauthorized_callback_answered(self, router, chat, sessions):
        dispatcher = UpdateDispatcher(router, chat, sessions, allowed_chat_ids=[99])
        chat.get_update.return_value = CallbackQueryUpdate(
            id="cb-8", chat_id=1, message_id=50, data="AA:BB"
        )

        await dispatcher.handle()

        router.set_policy_device.assert_not_called()
        chat.answer_callback_query.assert_called_once_with("cb-8", NOT_AUTHORIZED, show_alert=True)

    @pytest.mark.asyncio
    async def test_allowed_chat_served(self, router, chat, sessions):
        dispatcher = UpdateDispatcher(router, chat, sessions, allowed_chat_ids=[1])
        chat.get_update.return_value = MessageUpdate(chat_id=1, text="/start")

        await dispatcher.handle()

        chat.send_message.assert_called_once()

    # Router unavailable

    @pytest.mark.asyncio
    async def test_router_unavailable_callback(self, dispatcher, router, chat):
        router.get_devices.return_value = None
        chat.get_update.return_value = CallbackQueryUpdate(
            id="cb-9", chat_id=1, message_id=50, data="AA:BB"
        )

        await dispatcher.handle()

        router.set_policy_device.assert_not_called()
        chat.edit_message_reply_markup.assert_not_called()
        chat.answer_callback_query.assert_called_once_with("cb-9", TOGGLE_FAILED, show_alert=True)

    @pytest.mark.asyncio
    async def test_router_unavailable_message(self, dispatcher, router, chat, sessions):
        router.get_devices.return_value = None
        chat.get_update.return_value = MessageUpdate(chat_id=1, text="/start")

        await dispatcher.handle()

        chat.send_message.assert_called_once_with(1, ROUTER_UNAVAILABLE, None)
        sessions.update_storage.assert_called_once_with(1, {"last_message_id": 200})
