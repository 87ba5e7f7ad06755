"""Unit tests for position discovery over Transfer logs."""

import pytest

from src.positionwatch.chain.reader import ChainReadError
from src.positionwatch.config import ContractConfig, parse_monitor_config
from src.positionwatch.scanner.checkpoint import CheckpointStore, open_checkpoints
from src.positionwatch.scanner.scanner import PositionScanner
from src.positionwatch.scanner.store import OwnerAddress, read_positions


@pytest.fixture
def contract(temp_dir, addrs) -> ContractConfig:
    return ContractConfig(
        key="troves",
        chain="ETH",
        protocol="LIQUITY",
        address=addrs.trove_nft,
        csv_file=str(temp_dir / "troves.csv"),
        start_block_env_key="TEST_TROVES_START_BLOCK",
    )


class TestDiscover:
    """Tests for PositionScanner.discover."""

    @pytest.mark.asyncio
    async def test_finds_currently_owned_tokens(self, fake_reader, addrs) -> None:
        fake_reader.add_transfer(addrs.trove_nft, addrs.owner, 1, block=10)
        fake_reader.add_transfer(addrs.trove_nft, addrs.owner, 2, block=1500)
        fake_reader.add_transfer(addrs.trove_nft, addrs.other_owner, 3, block=20)
        fake_reader.set_owner(addrs.trove_nft, 1, addrs.owner.upper().replace("0X", "0x"))
        fake_reader.set_owner(addrs.trove_nft, 2, addrs.owner)

        scanner = PositionScanner({"ETH": fake_reader}, window_size=1000)
        owned = await scanner.discover("ETH", "LIQUITY", addrs.trove_nft, addrs.owner, 0, 2500)

        assert owned == {1, 2}
        assert fake_reader.log_queries == [(0, 1000), (1001, 2000), (2001, 2500)]

    @pytest.mark.asyncio
    async def test_transferred_away_token_is_dropped(self, fake_reader, addrs) -> None:
        fake_reader.add_transfer(addrs.trove_nft, addrs.owner, 5, block=100)
        fake_reader.set_owner(addrs.trove_nft, 5, addrs.other_owner)

        scanner = PositionScanner({"ETH": fake_reader})
        assert await scanner.discover("ETH", "LIQUITY", addrs.trove_nft, addrs.owner, 0, 200) == set()

    @pytest.mark.asyncio
    async def test_owner_of_failure_means_not_owned(self, fake_reader, addrs) -> None:
        """A burned token (ownerOf reverts) is not reported."""
        fake_reader.add_transfer(addrs.trove_nft, addrs.owner, 5, block=100)
        fake_reader.add_transfer(addrs.trove_nft, addrs.owner, 6, block=100)
        fake_reader.set_owner(addrs.trove_nft, 5, ChainReadError("nonexistent token"))
        fake_reader.set_owner(addrs.trove_nft, 6, addrs.owner)

        scanner = PositionScanner({"ETH": fake_reader})
        assert await scanner.discover("ETH", "LIQUITY", addrs.trove_nft, addrs.owner, 0, 200) == {6}

    @pytest.mark.asyncio
    async def test_failed_window_is_skipped(self, fake_reader, addrs) -> None:
        fake_reader.add_transfer(addrs.trove_nft, addrs.owner, 1, block=500)
        fake_reader.add_transfer(addrs.trove_nft, addrs.owner, 2, block=1500)
        fake_reader.set_owner(addrs.trove_nft, 1, addrs.owner)
        fake_reader.set_owner(addrs.trove_nft, 2, addrs.owner)
        fake_reader.failing_windows.add((0, 1000))

        scanner = PositionScanner({"ETH": fake_reader}, window_size=1000)
        owned = await scanner.discover("ETH", "LIQUITY", addrs.trove_nft, addrs.owner, 0, 2000)

        assert owned == {2}
        assert fake_reader.log_queries == [(0, 1000), (1001, 2000)]

    @pytest.mark.asyncio
    async def test_repeated_transfers_checked_once(self, fake_reader, addrs) -> None:
        fake_reader.add_transfer(addrs.trove_nft, addrs.owner, 9, block=10)
        fake_reader.add_transfer(addrs.trove_nft, addrs.owner, 9, block=1010)
        fake_reader.set_owner(addrs.trove_nft, 9, addrs.owner)

        scanner = PositionScanner({"ETH": fake_reader}, window_size=1000)
        assert await scanner.discover("ETH", "LIQUITY", addrs.trove_nft, addrs.owner, 0, 2000) == {9}
        owner_calls = [c for c in fake_reader.calls if c[1] == "ownerOf"]
        assert len(owner_calls) == 1

    @pytest.mark.asyncio
    async def test_empty_range(self, fake_reader, addrs) -> None:
        scanner = PositionScanner({"ETH": fake_reader})
        assert await scanner.discover("ETH", "LIQUITY", addrs.trove_nft, addrs.owner, 101, 100) == set()
        assert fake_reader.log_queries == []

    @pytest.mark.asyncio
    async def test_missing_chain_reader(self, addrs) -> None:
        scanner = PositionScanner({})
        assert await scanner.discover("ETH", "LIQUITY", addrs.trove_nft, addrs.owner, 0, 100) == set()

    def test_rejects_invalid_window_size(self) -> None:
        with pytest.raises(ValueError):
            PositionScanner({}, window_size=0)


class TestScanContract:
    """Tests for PositionScanner.scan_contract."""

    @pytest.mark.asyncio
    async def test_records_positions_and_advances_checkpoint(
        self, fake_reader, addrs, contract, temp_dir
    ) -> None:
        fake_reader.block_number = 2500
        fake_reader.add_transfer(addrs.trove_nft, addrs.owner, 1, block=10)
        fake_reader.add_transfer(addrs.trove_nft, addrs.other_owner, 2, block=2400)
        fake_reader.set_owner(addrs.trove_nft, 1, addrs.owner)
        fake_reader.set_owner(addrs.trove_nft, 2, addrs.other_owner)

        owners = [
            OwnerAddress(addrs.owner, "ETH"),
            OwnerAddress(addrs.other_owner, "ETH"),
            OwnerAddress(addrs.owner, "ARB"),
        ]
        checkpoints = CheckpointStore(temp_dir / "state.json")
        scanner = PositionScanner({"ETH": fake_reader}, window_size=1000, owner_concurrency=2)

        result = await scanner.scan_contract(contract, owners, checkpoints)

        assert result.from_block == 0
        assert result.to_block == 2500
        assert result.owned == {addrs.owner: {1}, addrs.other_owner: {2}}
        assert result.appended == 2
        assert result.failed_windows == 0
        assert checkpoints.last_scanned("ETH", "LIQUITY") == 2500
        assert CheckpointStore(temp_dir / "state.json").last_scanned("ETH", "LIQUITY") == 2500

        records = read_positions(contract.csv_file)
        assert {(r.owner, r.position_id) for r in records} == {(addrs.owner, 1), (addrs.other_owner, 2)}

    @pytest.mark.asyncio
    async def test_rescan_is_idempotent(self, fake_reader, addrs, contract, temp_dir) -> None:
        fake_reader.block_number = 1000
        fake_reader.add_transfer(addrs.trove_nft, addrs.owner, 1, block=10)
        fake_reader.set_owner(addrs.trove_nft, 1, addrs.owner)
        owners = [OwnerAddress(addrs.owner, "ETH")]
        scanner = PositionScanner({"ETH": fake_reader})

        await scanner.scan_contract(contract, owners, CheckpointStore(temp_dir / "a.json"))
        # Fresh checkpoint file: the same range is scanned again
        result = await scanner.scan_contract(contract, owners, CheckpointStore(temp_dir / "b.json"))

        assert result.owned == {addrs.owner: {1}}
        assert result.appended == 0
        assert len(read_positions(contract.csv_file)) == 1

    @pytest.mark.asyncio
    async def test_resumes_after_checkpoint(self, fake_reader, addrs, contract, temp_dir) -> None:
        checkpoints = CheckpointStore(temp_dir / "state.json")
        checkpoints.advance("ETH", "LIQUITY", 2000)
        fake_reader.block_number = 2600
        scanner = PositionScanner({"ETH": fake_reader}, window_size=1000)

        result = await scanner.scan_contract(contract, [OwnerAddress(addrs.owner, "ETH")], checkpoints)

        assert result.from_block == 2001
        assert fake_reader.log_queries == [(2001, 2600)]
        assert checkpoints.last_scanned("ETH", "LIQUITY") == 2600

    @pytest.mark.asyncio
    async def test_bootstrap_block_from_env(
        self, fake_reader, addrs, contract, temp_dir, monkeypatch
    ) -> None:
        monkeypatch.setenv("TEST_TROVES_START_BLOCK", "1500")
        fake_reader.block_number = 1800
        scanner = PositionScanner({"ETH": fake_reader}, window_size=1000)

        result = await scanner.scan_contract(
            contract, [OwnerAddress(addrs.owner, "ETH")], CheckpointStore(temp_dir / "state.json")
        )

        assert result.from_block == 1500
        assert fake_reader.log_queries == [(1500, 1800)]

    @pytest.mark.asyncio
    async def test_checkpoint_advances_despite_failed_windows(
        self, fake_reader, addrs, contract, temp_dir
    ) -> None:
        fake_reader.block_number = 2000
        fake_reader.failing_windows.add((1001, 2000))
        checkpoints = CheckpointStore(temp_dir / "state.json")
        scanner = PositionScanner({"ETH": fake_reader}, window_size=1000)

        result = await scanner.scan_contract(contract, [OwnerAddress(addrs.owner, "ETH")], checkpoints)

        assert result.failed_windows == 1
        assert checkpoints.last_scanned("ETH", "LIQUITY") == 2000

    @pytest.mark.asyncio
    async def test_head_block_failure_leaves_checkpoint(
        self, fake_reader, addrs, contract, temp_dir
    ) -> None:
        fake_reader.block_number = RuntimeError("rpc down")
        checkpoints = CheckpointStore(temp_dir / "state.json")
        checkpoints.advance("ETH", "LIQUITY", 100)
        scanner = PositionScanner({"ETH": fake_reader})

        result = await scanner.scan_contract(contract, [OwnerAddress(addrs.owner, "ETH")], checkpoints)

        assert result.from_block is None
        assert fake_reader.log_queries == []
        assert checkpoints.last_scanned("ETH", "LIQUITY") == 100

    @pytest.mark.asyncio
    async def test_nothing_new_to_scan(self, fake_reader, addrs, contract, temp_dir) -> None:
        checkpoints = CheckpointStore(temp_dir / "state.json")
        checkpoints.advance("ETH", "LIQUITY", 500)
        fake_reader.block_number = 500
        scanner = PositionScanner({"ETH": fake_reader})

        result = await scanner.scan_contract(contract, [OwnerAddress(addrs.owner, "ETH")], checkpoints)

        assert result.from_block is None
        assert fake_reader.log_queries == []


class TestSectionCheckpoints:
    """Loans and LPs keep separate checkpoints."""

    @pytest.mark.asyncio
    async def test_loan_and_lp_of_one_protocol_both_discovered(
        self, fake_reader, addrs, raw_config
    ) -> None:
        cfg = raw_config["position_monitor"]
        cfg["loans"]["contracts"][0]["protocol"] = "ENOSYS"
        cfg["lps"]["contracts"][0]["protocol"] = "ENOSYS"
        cfg["lps"]["ignore"] = {}
        config = parse_monitor_config(raw_config)

        fake_reader.block_number = 2500
        fake_reader.add_transfer(addrs.trove_nft, addrs.owner, 1, block=10)
        fake_reader.add_transfer(addrs.position_manager, addrs.owner, 7, block=10)
        fake_reader.set_owner(addrs.trove_nft, 1, addrs.owner)
        fake_reader.set_owner(addrs.position_manager, 7, addrs.owner)
        owners = [OwnerAddress(addrs.owner, "ETH")]
        checkpoints = open_checkpoints(config.scan)
        scanner = PositionScanner({"ETH": fake_reader}, window_size=1000)

        loan = await scanner.scan_contract(config.loans[0], owners, checkpoints[config.loans[0].section])
        lp = await scanner.scan_contract(config.lps[0], owners, checkpoints[config.lps[0].section])

        assert loan.owned == {addrs.owner: {1}}
        assert lp.from_block == 0
        assert lp.owned == {addrs.owner: {7}}
        assert CheckpointStore(config.scan.loan_checkpoint_path).last_scanned("ETH", "ENOSYS") == 2500
        assert CheckpointStore(config.scan.lp_checkpoint_path).last_scanned("ETH", "ENOSYS") == 2500

    def test_open_checkpoints_uses_section_files(self, monitor_config) -> None:
        checkpoints = open_checkpoints(monitor_config.scan)

        assert set(checkpoints) == {"loans", "lps"}
        assert str(checkpoints["loans"].path) == monitor_config.scan.loan_checkpoint_path
        assert str(checkpoints["lps"].path) == monitor_config.scan.lp_checkpoint_path
