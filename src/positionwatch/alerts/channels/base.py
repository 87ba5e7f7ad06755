"""Base channel interface for notifications.

All notification channels must inherit from BaseChannel and
implement the send method.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class ChannelResult:
    """Result of sending a message through a channel.

    Attributes:
        success: Whether every chunk was delivered
        channel_name: Name of the channel (telegram, discord)
        error_message: Error message if send failed
        chunks_sent: Number of chunks delivered
    """

    success: bool
    channel_name: str
    error_message: str | None = None
    chunks_sent: int = 0


class BaseChannel(ABC):
    """Base class for notification channels.

    Channels never raise from ``send``; failures are reported in the
    returned ChannelResult.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the channel name."""
        ...

    @property
    @abstractmethod
    def max_length(self) -> int:
        """Maximum characters per message on this channel."""
        ...

    @abstractmethod
    async def send(self, message: str) -> ChannelResult:
        """Send a message, chunked to the channel's limit.

        Args:
            message: Plain-text message

        Returns:
            ChannelResult indicating success or failure
        """
        ...

    @abstractmethod
    async def test_connection(self) -> ChannelResult:
        """Test the channel connection.

        Returns:
            ChannelResult indicating if connection is valid
        """
        ...
