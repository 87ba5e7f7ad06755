"""Notification dispatcher for multi-channel delivery.

Handles parallel delivery to every enabled channel with failure
isolation. Delivery is fire-and-forget from the caller's point of view:
failures are logged and reported, never retried and never raised.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from ..config import ChannelConfig, DiscordChannelConfig, TelegramChannelConfig
from .channels.base import BaseChannel, ChannelResult
from .channels.discord import DiscordChannel
from .channels.telegram import TelegramChannel
from .models import DeliveryStatus, Notification

logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    """Result of dispatching a message to multiple channels."""

    delivery_status: DeliveryStatus
    channels_sent: list[str] = field(default_factory=list)
    channels_failed: list[str] = field(default_factory=list)
    error_message: str | None = None


class AlertDispatcher:
    """Dispatches messages to multiple notification channels.

    Supports:
    - Parallel delivery to all channels
    - Failure isolation (one channel failing doesn't affect others)
    - Timeout handling for slow channels
    """

    def __init__(self, channels: list[BaseChannel], timeout: float = 30.0):
        """Initialize the dispatcher.

        Args:
            channels: List of notification channels
            timeout: Per-channel timeout in seconds
        """
        self.channels = channels
        self.timeout = timeout

    async def notify(self, notification: Notification) -> DispatchResult:
        """Deliver an alert notification to every channel."""
        return await self.dispatch(notification.message)

    async def dispatch(self, message: str) -> DispatchResult:
        """Send a message to all channels.

        Args:
            message: Plain-text message

        Returns:
            DispatchResult with delivery status and channel details
        """
        if not self.channels:
            logger.info("No notification channels configured; message not sent")
            return DispatchResult(delivery_status=DeliveryStatus.SKIPPED)

        gathered = await asyncio.gather(
            *(self._send_with_timeout(channel, message) for channel in self.channels),
            return_exceptions=True,
        )

        channels_sent = []
        channels_failed = []
        for channel, result in zip(self.channels, gathered):
            if isinstance(result, BaseException):
                logger.error(f"Channel {channel.name} raised exception: {result}")
                channels_failed.append(channel.name)
            elif result.success:
                channels_sent.append(channel.name)
            else:
                logger.warning(f"Channel {channel.name} failed: {result.error_message}")
                channels_failed.append(channel.name)

        delivery_status = self._determine_status(channels_sent, channels_failed)

        error_message = None
        if delivery_status == DeliveryStatus.FAILED:
            error_message = f"All channels failed: {', '.join(channels_failed)}"

        return DispatchResult(
            delivery_status=delivery_status,
            channels_sent=channels_sent,
            channels_failed=channels_failed,
            error_message=error_message,
        )

    async def _send_with_timeout(self, channel: BaseChannel, message: str) -> ChannelResult:
        """Send to a channel with timeout handling.

        Returns:
            ChannelResult (may indicate timeout failure)
        """
        try:
            return await asyncio.wait_for(channel.send(message), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"Channel {channel.name} timed out after {self.timeout}s")
            return ChannelResult(
                success=False,
                channel_name=channel.name,
                error_message=f"Timeout after {self.timeout}s",
            )
        except Exception as e:
            logger.error(f"Channel {channel.name} error: {e}")
            return ChannelResult(success=False, channel_name=channel.name, error_message=str(e))

    @staticmethod
    def _determine_status(channels_sent: list[str], channels_failed: list[str]) -> DeliveryStatus:
        """Overall delivery status from per-channel outcomes."""
        total = len(channels_sent) + len(channels_failed)

        if total == 0 or len(channels_sent) == total:
            return DeliveryStatus.SUCCESS

        if len(channels_sent) == 0:
            return DeliveryStatus.FAILED

        return DeliveryStatus.PARTIAL


def build_channels(configs: dict[str, ChannelConfig]) -> list[BaseChannel]:
    """Instantiate every enabled channel that has its credentials.

    A channel enabled without credentials is skipped with an error log.
    """
    channels: list[BaseChannel] = []

    for name, cfg in configs.items():
        if not cfg.enabled:
            continue

        if isinstance(cfg, TelegramChannelConfig):
            if not (cfg.bot_token and cfg.chat_id):
                logger.error("Telegram enabled but bot_token/chat_id missing; channel disabled")
                continue
            channels.append(TelegramChannel(bot_token=cfg.bot_token, chat_id=cfg.chat_id))
        elif isinstance(cfg, DiscordChannelConfig):
            if not cfg.webhook_url:
                logger.error("Discord enabled but webhook_url missing; channel disabled")
                continue
            channels.append(DiscordChannel(webhook_url=cfg.webhook_url))
        else:
            logger.warning(f"Unknown channel '{name}' ignored")

    logger.info(f"Notification channels: {[c.name for c in channels] or 'none'}")
    return channels
