"""Incremental position discovery."""

from .checkpoint import CheckpointStore, open_checkpoints
from .scanner import ContractScanResult, PositionScanner
from .store import (
    OwnerAddress,
    PositionRecord,
    append_positions,
    load_address_book,
    read_positions,
)
from .windows import iter_block_windows

__all__ = [
    "CheckpointStore",
    "ContractScanResult",
    "OwnerAddress",
    "PositionRecord",
    "PositionScanner",
    "append_positions",
    "iter_block_windows",
    "load_address_book",
    "open_checkpoints",
    "read_positions",
]
