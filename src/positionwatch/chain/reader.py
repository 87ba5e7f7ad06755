"""Read-only chain access over web3.py.

ChainReader wraps an AsyncWeb3 instance and exposes only what the scanner
and monitors need: the head block, bounded log queries, and contract view
calls. Any web3 or RPC failure surfaces as ChainReadError.
"""

import logging
from typing import Any

from web3 import AsyncWeb3

from .abi import ERC721_ABI

logger = logging.getLogger(__name__)


class ChainReadError(Exception):
    """A chain read failed (RPC error, timeout, revert, bad response)."""


def address_topic(address: str) -> str:
    """Left-pad an address into a 32-byte indexed topic."""
    return "0x" + address.lower().removeprefix("0x").rjust(64, "0")


def topic_to_int(topic: Any) -> int:
    """Decode an indexed uint256 topic (bytes/HexBytes or hex string)."""
    if isinstance(topic, (bytes, bytearray)):
        return int.from_bytes(topic, "big")
    return int(str(topic), 16)


class ChainReader:
    """Read-only access to one chain.

    Args:
        chain: Chain id used in logs and records (e.g. "ETH")
        w3: Connected AsyncWeb3 instance
    """

    def __init__(self, chain: str, w3: AsyncWeb3):
        self.chain = chain
        self.w3 = w3
        self._contracts: dict[tuple[str, int], Any] = {}

    @classmethod
    def from_rpc_url(cls, chain: str, rpc_url: str, timeout: float = 30.0) -> "ChainReader":
        """Build a reader for an HTTP JSON-RPC endpoint."""
        provider = AsyncWeb3.AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": timeout})
        return cls(chain, AsyncWeb3(provider))

    def _contract(self, address: str, abi: list[dict]) -> Any:
        key = (address.lower(), id(abi))
        if key not in self._contracts:
            self._contracts[key] = self.w3.eth.contract(
                address=AsyncWeb3.to_checksum_address(address),
                abi=abi,
            )
        return self._contracts[key]

    async def get_block_number(self) -> int:
        """Current head block."""
        try:
            return int(await self.w3.eth.block_number)
        except Exception as e:
            raise ChainReadError(f"{self.chain}: block_number failed: {e}") from e

    async def get_logs(
        self,
        address: str,
        from_block: int,
        to_block: int,
        topics: list[str | None],
    ) -> list[dict]:
        """Fetch event logs for one contract over an inclusive block range."""
        params = {
            "address": AsyncWeb3.to_checksum_address(address),
            "fromBlock": from_block,
            "toBlock": to_block,
            "topics": topics,
        }
        try:
            logs = await self.w3.eth.get_logs(params)
        except Exception as e:
            raise ChainReadError(
                f"{self.chain}: get_logs {address} [{from_block}, {to_block}] failed: {e}"
            ) from e
        return [dict(log) for log in logs]

    async def call(self, address: str, abi: list[dict], fn_name: str, *args: Any) -> Any:
        """Execute a contract view function and return its decoded result."""
        try:
            fn = getattr(self._contract(address, abi).functions, fn_name)
            return await fn(*args).call()
        except Exception as e:
            raise ChainReadError(f"{self.chain}: {fn_name}{args} on {address} failed: {e}") from e

    async def owner_of(self, nft_address: str, token_id: int) -> str:
        """Current owner of an ERC-721 token, lower-cased."""
        owner = await self.call(nft_address, ERC721_ABI, "ownerOf", token_id)
        return str(owner).lower()
