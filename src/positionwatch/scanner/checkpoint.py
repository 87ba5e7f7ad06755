"""Scan checkpoint persistence.

Checkpoints are stored as ``{chain: {protocol: {"lastScannedBlock": int}}}``
in a JSON file. The last scanned block for a (chain, protocol) pair never
decreases.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any

from ..config import CONTRACT_SECTIONS, ScanConfig

logger = logging.getLogger(__name__)


class CheckpointStore:
    """JSON-backed map of the last fully scanned block per (chain, protocol).

    Args:
        path: JSON file location; created on first save
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._state: dict[str, dict[str, dict[str, Any]]] = {}
        self.load()

    def load(self) -> None:
        """Read the checkpoint file. A missing or unreadable file starts empty."""
        if not self.path.exists():
            self._state = {}
            return
        try:
            with open(self.path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read checkpoint file {self.path}: {e}; starting fresh")
            self._state = {}
            return
        self._state = data if isinstance(data, dict) else {}

    def save(self) -> None:
        """Write the checkpoint file atomically."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w") as f:
            json.dump(self._state, f, indent=2, sort_keys=True)
        os.replace(tmp_path, self.path)

    def last_scanned(self, chain: str, protocol: str) -> int | None:
        """Last scanned block, or None when the pair was never scanned."""
        entry = self._state.get(chain, {}).get(protocol, {})
        value = entry.get("lastScannedBlock")
        return int(value) if isinstance(value, int) and not isinstance(value, bool) else None

    def next_start(self, chain: str, protocol: str, bootstrap_block: int = 0) -> int:
        """First block of the next scan.

        Resumes one block after the checkpoint, or at ``bootstrap_block``
        when no checkpoint exists yet.
        """
        last = self.last_scanned(chain, protocol)
        if last is None:
            return bootstrap_block
        return last + 1

    def advance(self, chain: str, protocol: str, block: int) -> int:
        """Move the checkpoint forward to ``block``; never moves it back.

        Returns:
            The stored checkpoint after the update
        """
        last = self.last_scanned(chain, protocol)
        if last is not None and block < last:
            logger.warning(
                f"Refusing to move checkpoint {chain}/{protocol} back from {last} to {block}"
            )
            return last

        self._state.setdefault(chain, {}).setdefault(protocol, {})["lastScannedBlock"] = block
        logger.info(f"Checkpoint {chain}/{protocol} -> block {block}")
        return block

    def as_dict(self) -> dict[str, dict[str, dict[str, Any]]]:
        """Copy of the underlying mapping."""
        return json.loads(json.dumps(self._state))


def open_checkpoints(scan: ScanConfig) -> dict[str, CheckpointStore]:
    """One checkpoint store per contract section, keyed "loans" / "lps".

    Loans and LPs keep separate files so a trove NFT and a position manager
    of the same chain and protocol never share a last scanned block.
    """
    return {section: CheckpointStore(scan.checkpoint_path_for(section)) for section in CONTRACT_SECTIONS}
