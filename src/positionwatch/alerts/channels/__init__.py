"""Notification channel implementations.

Supported channels:
- Telegram: Bot API text messages
- Discord: Webhook text messages
"""

from .base import BaseChannel, ChannelResult
from .discord import DiscordChannel
from .telegram import TelegramChannel

__all__ = [
    "BaseChannel",
    "ChannelResult",
    "DiscordChannel",
    "TelegramChannel",
]
