"""Position and address-book CSV files.

Position files are append-only: discovery adds rows it has not seen
before and never rewrites existing ones.
"""

import csv
import logging
import re
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

POSITION_COLUMNS = ["chain", "protocol", "contract", "owner", "positionId"]
LEGACY_ID_COLUMNS = ("positionId", "troveId", "tokenId")

ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


@dataclass(frozen=True)
class PositionRecord:
    """A discovered position, identified by (chain, protocol, owner, position_id)."""

    chain: str
    protocol: str
    contract: str
    owner: str
    position_id: int

    @property
    def key(self) -> tuple[str, str, str, str, int]:
        """Dedupe key: case-insensitive on chain, protocol and addresses."""
        return (
            self.chain.upper(),
            self.protocol.upper(),
            self.contract.lower(),
            self.owner.lower(),
            self.position_id,
        )

    def to_row(self) -> dict[str, str]:
        return {
            "chain": self.chain,
            "protocol": self.protocol,
            "contract": self.contract,
            "owner": self.owner,
            "positionId": str(self.position_id),
        }


@dataclass(frozen=True)
class OwnerAddress:
    """An address to scan for, on one chain."""

    address: str
    chain: str


def load_address_book(path: Path | str) -> list[OwnerAddress]:
    """Read ``address,chain`` rows.

    The file has no header; a leading ``address,chain`` header row is
    tolerated and skipped. Malformed addresses are skipped with a warning;
    chain ids are upper-cased and addresses lower-cased. Duplicate rows are
    collapsed.
    """
    path = Path(path)
    owners: list[OwnerAddress] = []
    seen: set[tuple[str, str]] = set()

    with open(path, newline="", encoding="utf-8") as f:
        for line_no, row in enumerate(csv.reader(f), start=1):
            if not row or not any(cell.strip() for cell in row):
                continue
            address = row[0].strip()
            chain = row[1].strip().upper() if len(row) > 1 else ""
            if line_no == 1 and address.lower() == "address":
                continue

            if not ADDRESS_RE.match(address):
                logger.warning(f"{path}:{line_no}: skipping malformed address '{address}'")
                continue
            if not chain:
                logger.warning(f"{path}:{line_no}: skipping address {address} with no chain")
                continue

            key = (address.lower(), chain)
            if key in seen:
                continue
            seen.add(key)
            owners.append(OwnerAddress(address=address.lower(), chain=chain))

    logger.info(f"Loaded {len(owners)} addresses from {path}")
    return owners


def _parse_position_id(row: dict[str, str]) -> int | None:
    for column in LEGACY_ID_COLUMNS:
        raw = (row.get(column) or "").strip()
        if raw:
            try:
                return int(raw)
            except ValueError:
                return None
    return None


def read_positions(path: Path | str) -> list[PositionRecord]:
    """Read a position CSV. A missing file yields no rows.

    Accepts the legacy ``troveId`` and ``tokenId`` id columns. Rows without
    a parseable id are skipped.
    """
    path = Path(path)
    if not path.exists():
        return []

    records = []
    with open(path, newline="", encoding="utf-8") as f:
        for line_no, row in enumerate(csv.DictReader(f), start=2):
            position_id = _parse_position_id(row)
            if position_id is None:
                logger.warning(f"{path}:{line_no}: skipping row without a valid position id")
                continue
            records.append(
                PositionRecord(
                    chain=(row.get("chain") or "").strip().upper(),
                    protocol=(row.get("protocol") or "").strip().upper(),
                    contract=(row.get("contract") or "").strip(),
                    owner=(row.get("owner") or "").strip().lower(),
                    position_id=position_id,
                )
            )
    return records


def append_positions(path: Path | str, records: list[PositionRecord]) -> int:
    """Append records whose key is not already present in the file.

    Args:
        path: Position CSV; created with a header if missing
        records: Candidate rows

    Returns:
        Number of rows appended
    """
    path = Path(path)
    existing = {record.key for record in read_positions(path)}

    new_records = []
    for record in records:
        if record.key in existing:
            continue
        existing.add(record.key)
        new_records.append(record)

    if not new_records:
        return 0

    path.parent.mkdir(parents=True, exist_ok=True)
    write_header = not path.exists() or path.stat().st_size == 0
    with open(path, "a", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=POSITION_COLUMNS)
        if write_header:
            writer.writeheader()
        for record in new_records:
            writer.writerow(record.to_row())

    logger.info(f"Appended {len(new_records)} new positions to {path}")
    return len(new_records)
