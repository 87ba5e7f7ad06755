"""Incremental on-chain position discovery.

For each (chain, protocol, owner) the scanner reads Transfer logs whose
recipient is the owner over bounded block windows, collects every token
id seen, then confirms current ownership with ``ownerOf``. The checkpoint
for a (chain, protocol) pair advances to the head block only after every
owner and window for that pair has been processed.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from ..chain.abi import TRANSFER_TOPIC
from ..chain.reader import ChainReadError, address_topic, topic_to_int
from ..config import ContractConfig
from .checkpoint import CheckpointStore
from .store import OwnerAddress, PositionRecord, append_positions
from .windows import iter_block_windows

logger = logging.getLogger(__name__)


class LogReader(Protocol):
    """The chain reads discovery needs."""

    async def get_block_number(self) -> int: ...

    async def get_logs(
        self, address: str, from_block: int, to_block: int, topics: list[str | None]
    ) -> list[dict[str, Any]]: ...

    async def owner_of(self, nft_address: str, token_id: int) -> str: ...


@dataclass
class ContractScanResult:
    """Outcome of scanning one contract.

    Attributes:
        contract_key: Configured contract key
        from_block: First block scanned (None when nothing was scanned)
        to_block: Head block the scan covered
        owned: Owner -> confirmed position ids
        appended: Rows newly written to the position file
        failed_windows: Log windows skipped after an error
    """

    contract_key: str
    from_block: int | None = None
    to_block: int | None = None
    owned: dict[str, set[int]] = field(default_factory=dict)
    appended: int = 0
    failed_windows: int = 0

    @property
    def total_owned(self) -> int:
        return sum(len(ids) for ids in self.owned.values())


class PositionScanner:
    """Discovers owned position NFTs via Transfer logs.

    Args:
        readers: Chain id -> reader
        window_size: Maximum block span of a single log query
        owner_concurrency: Owners of one contract scanned in parallel
    """

    def __init__(
        self,
        readers: dict[str, LogReader],
        window_size: int = 1000,
        owner_concurrency: int = 1,
    ):
        if window_size < 1:
            raise ValueError(f"window_size must be >= 1, got {window_size}")
        self.readers = readers
        self.window_size = window_size
        self.owner_concurrency = max(1, owner_concurrency)
        self._failed_windows = 0

    async def discover(
        self,
        chain: str,
        protocol: str,
        nft_address: str,
        owner_address: str,
        start_block: int,
        latest_block: int,
    ) -> set[int]:
        """Find the position ids ``owner_address`` currently holds.

        Args:
            chain: Chain id
            protocol: Protocol id (for logging)
            nft_address: Position NFT contract
            owner_address: Owner to look for
            start_block: First block to scan, inclusive
            latest_block: Last block to scan, inclusive

        Returns:
            Ids received in the scanned range and still owned now
        """
        if start_block > latest_block:
            return set()

        reader = self.readers.get(chain)
        if reader is None:
            logger.error(f"No chain reader for {chain}; cannot scan {protocol}")
            return set()

        owner = owner_address.lower()
        topics = [TRANSFER_TOPIC, None, address_topic(owner)]
        candidates: set[int] = set()

        for from_block, to_block in iter_block_windows(start_block, latest_block, self.window_size):
            logger.debug(f"{chain}/{protocol} {owner}: logs [{from_block}, {to_block}]")
            try:
                logs = await reader.get_logs(nft_address, from_block, to_block, topics)
            except ChainReadError as e:
                self._failed_windows += 1
                logger.error(
                    f"{chain}/{protocol} {owner}: window [{from_block}, {to_block}] skipped: {e}"
                )
                continue

            window_ids = set()
            for log in logs:
                log_topics = log.get("topics") or []
                if len(log_topics) < 4:
                    continue
                try:
                    window_ids.add(topic_to_int(log_topics[3]))
                except (TypeError, ValueError):
                    logger.debug(f"Unparseable token id topic: {log_topics[3]!r}")

            for token_id in sorted(window_ids - candidates):
                logger.debug(f"{chain}/{protocol} {owner}: candidate #{token_id}")
            candidates |= window_ids

        owned: set[int] = set()
        for token_id in sorted(candidates):
            try:
                current_owner = (await reader.owner_of(nft_address, token_id)).lower()
            except ChainReadError as e:
                logger.debug(f"{chain}/{protocol} #{token_id}: ownerOf failed, treating as not held: {e}")
                continue

            if current_owner == owner:
                logger.info(f"{chain}/{protocol} {owner}: owns #{token_id}")
                owned.add(token_id)
            else:
                logger.debug(f"{chain}/{protocol} #{token_id}: now owned by {current_owner}, dropped")

        return owned

    async def scan_contract(
        self,
        contract: ContractConfig,
        owners: list[OwnerAddress],
        checkpoints: CheckpointStore,
    ) -> ContractScanResult:
        """Scan one contract for every owner on its chain and record the results.

        New positions are appended to the contract's CSV file and the
        checkpoint advances to the head block observed at scan start. When the
        head block cannot be read, nothing is scanned and the checkpoint is
        left unchanged.
        """
        result = ContractScanResult(contract_key=contract.key)

        reader = self.readers.get(contract.chain)
        if reader is None:
            logger.error(f"{contract.key}: no chain reader for {contract.chain}; skipping")
            return result

        try:
            latest = await reader.get_block_number()
        except ChainReadError as e:
            logger.error(f"{contract.key}: could not read head block: {e}")
            return result

        start = checkpoints.next_start(contract.chain, contract.protocol, contract.start_block())
        if start > latest:
            logger.info(f"{contract.key}: nothing new to scan (next block {start}, head {latest})")
            return result

        result.from_block, result.to_block = start, latest
        chain_owners = [o.address for o in owners if o.chain == contract.chain]
        logger.info(
            f"{contract.key}: scanning blocks {start}..{latest} for {len(chain_owners)} owners"
        )

        self._failed_windows = 0
        semaphore = asyncio.Semaphore(self.owner_concurrency)

        async def scan_owner(owner: str) -> tuple[str, set[int]]:
            async with semaphore:
                ids = await self.discover(
                    contract.chain, contract.protocol, contract.address, owner, start, latest
                )
                return owner, ids

        for owner, ids in await asyncio.gather(*(scan_owner(o) for o in chain_owners)):
            if ids:
                result.owned[owner] = ids
        result.failed_windows = self._failed_windows

        records = [
            PositionRecord(
                chain=contract.chain,
                protocol=contract.protocol,
                contract=contract.address,
                owner=owner,
                position_id=token_id,
            )
            for owner, ids in sorted(result.owned.items())
            for token_id in sorted(ids)
        ]
        result.appended = append_positions(contract.csv_file, records)

        checkpoints.advance(contract.chain, contract.protocol, latest)
        checkpoints.save()

        logger.info(
            f"{contract.key}: {result.total_owned} owned positions, "
            f"{result.appended} new, {result.failed_windows} failed windows"
        )
        return result
