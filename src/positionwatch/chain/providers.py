"""Per-chain reader construction."""

import logging

from ..config import ChainConfig
from .reader import ChainReader

logger = logging.getLogger(__name__)


def build_readers(chains: dict[str, ChainConfig], timeout: float = 30.0) -> dict[str, ChainReader]:
    """Build one ChainReader per configured chain.

    A chain whose RPC environment variable is unset is skipped with an
    error log; positions on it are skipped later rather than aborting the run.

    Args:
        chains: Chain id -> chain settings
        timeout: HTTP timeout per RPC request in seconds

    Returns:
        Chain id -> ChainReader for every chain with an RPC URL
    """
    readers: dict[str, ChainReader] = {}
    for chain_id, chain in chains.items():
        rpc_url = chain.rpc_url
        if not rpc_url:
            logger.error(f"No RPC URL for chain {chain_id} (set {chain.rpc_env_key}); skipping chain")
            continue
        readers[chain_id] = ChainReader.from_rpc_url(chain_id, rpc_url, timeout=timeout)
        logger.info(f"Chain reader ready for {chain_id}")
    return readers
