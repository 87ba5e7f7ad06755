"""Read-only chain access."""

from .abi import TRANSFER_TOPIC
from .providers import build_readers
from .reader import ChainReader, ChainReadError, address_topic, topic_to_int

__all__ = [
    "TRANSFER_TOPIC",
    "ChainReadError",
    "ChainReader",
    "address_topic",
    "build_readers",
    "topic_to_int",
]
