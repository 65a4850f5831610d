"""Inline keyboard for the device control panel."""

from collections.abc import Mapping, Sequence
from typing import Optional

from telegram import InlineKeyboardButton, InlineKeyboardMarkup

from ..keenetic.models import RESTRICTED_POLICY, Device

RESTRICTED_EMOJI = "🟢"
DEFAULT_EMOJI = "⚪"


def policy_emoji(policy: str, restricted_policy: str = RESTRICTED_POLICY) -> str:
    return RESTRICTED_EMOJI if policy == restricted_policy else DEFAULT_EMOJI


def device_label(device: Device, policy: str, restricted_policy: str = RESTRICTED_POLICY) -> str:
    return f"{device.name} ({policy_emoji(policy, restricted_policy)})"


def build_keyboard(
    devices: Sequence[Device],
    overrides: Optional[Mapping[str, str]] = None,
    restricted_policy: str = RESTRICTED_POLICY,
) -> InlineKeyboardMarkup:
    """
    Build one button row per device, preserving order.

    Args:
        devices: Devices to show
        overrides: mac -> policy to display instead of the device's own policy
        restricted_policy: Policy id rendered as restricted

    Returns:
        Keyboard whose buttons carry the device mac as callback data
    """
    overrides = overrides or {}
    rows = []
    for device in devices:
        policy = overrides.get(device.mac, device.policy)
        rows.append([
            InlineKeyboardButton(
                text=device_label(device, policy, restricted_policy),
                callback_data=device.mac,
            )
        ])
    return InlineKeyboardMarkup(rows)
