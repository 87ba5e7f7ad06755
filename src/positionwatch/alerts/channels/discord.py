"""Discord webhook notification channel."""

import logging

import httpx

from ..formatter import DISCORD_MAX_LENGTH, split_message
from .base import BaseChannel, ChannelResult

logger = logging.getLogger(__name__)


class DiscordChannel(BaseChannel):
    """Discord webhook notification channel."""

    def __init__(self, webhook_url: str, timeout: float = 10.0):
        """Initialize the Discord channel.

        Args:
            webhook_url: Discord webhook URL
            timeout: Request timeout in seconds
        """
        self.webhook_url = webhook_url
        self.timeout = timeout

    @property
    def name(self) -> str:
        """Return channel name."""
        return "discord"

    @property
    def max_length(self) -> int:
        return DISCORD_MAX_LENGTH

    async def send(self, message: str) -> ChannelResult:
        """Post a message to the webhook, one request per chunk.

        Args:
            message: Plain-text message; split if longer than 2000 characters

        Returns:
            ChannelResult with success status
        """
        sent = 0
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                for chunk in split_message(message, self.max_length):
                    logger.debug(f"Sending Discord webhook to {self.webhook_url[:50]}...")
                    response = await client.post(self.webhook_url, json={"content": chunk})
                    response.raise_for_status()
                    sent += 1

            logger.info(f"Discord message sent ({sent} chunk(s))")
            return ChannelResult(success=True, channel_name=self.name, chunks_sent=sent)

        except httpx.HTTPError as e:
            error_msg = f"Discord HTTP error: {e}"
            logger.error(error_msg)
            return ChannelResult(
                success=False, channel_name=self.name, error_message=error_msg, chunks_sent=sent
            )

        except Exception as e:
            error_msg = f"Discord error: {e}"
            logger.error(error_msg)
            return ChannelResult(
                success=False, channel_name=self.name, error_message=str(e), chunks_sent=sent
            )

    async def test_connection(self) -> ChannelResult:
        """Test webhook connectivity (Discord webhooks return info on GET)."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(self.webhook_url)
            if response.status_code == 200:
                return ChannelResult(success=True, channel_name=self.name)
            return ChannelResult(
                success=False,
                channel_name=self.name,
                error_message=f"HTTP {response.status_code}",
            )
        except Exception as e:
            logger.warning(f"Discord connection test failed: {e}")
            return ChannelResult(success=False, channel_name=self.name, error_message=str(e))
