"""Monitor configuration loading and validation.

This module provides dataclasses for the position monitor configuration
and a loader that reads them from a YAML file. Every section validates
itself in ``__post_init__``; any invalid value raises ConfigError so the
process stops before touching the chain.
"""

import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .risk.classifier import (
    LiquidationThresholds,
    RangeThresholds,
    RedemptionThresholds,
    RiskThresholds,
)
from .risk.tiers import RiskKind, Tier, parse_tier

VALID_PRICE_MODES = {"POOL", "STATIC"}
VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
CONTRACT_SECTIONS = ("loans", "lps")


class ConfigError(ValueError):
    """Configuration is missing or invalid."""


def _require_finite(name: str, value: Any) -> float:
    """Coerce a threshold to float, rejecting non-numbers and non-finite values."""
    if isinstance(value, bool) or value is None:
        raise ConfigError(f"{name} must be a finite number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be a finite number, got {value!r}") from e
    if not math.isfinite(number):
        raise ConfigError(f"{name} must be a finite number, got {value!r}")
    return number


@dataclass
class ScanConfig:
    """Position discovery settings.

    Attributes:
        max_log_range_blocks: RPC ceiling on blocks per log query (>= 1)
        loan_checkpoint_path: JSON file holding the last scanned block per chain/protocol for loans
        lp_checkpoint_path: Same, for LP position managers
        addresses_csv: CSV of ``address,chain`` rows to scan for
        owner_concurrency: Owners scanned in parallel per contract (>= 1)
    """

    max_log_range_blocks: int = 1000
    loan_checkpoint_path: str = "data/loan_scan_state.json"
    lp_checkpoint_path: str = "data/lp_scan_state.json"
    addresses_csv: str = "data/addresses.csv"
    owner_concurrency: int = 1

    def __post_init__(self) -> None:
        """Validate scan settings."""
        if self.max_log_range_blocks < 1:
            raise ConfigError(f"max_log_range_blocks must be >= 1, got {self.max_log_range_blocks}")
        if self.owner_concurrency < 1:
            raise ConfigError(f"owner_concurrency must be >= 1, got {self.owner_concurrency}")

    def checkpoint_path_for(self, section: str) -> str:
        """Checkpoint file for a contract section ("loans" or "lps")."""
        return self.loan_checkpoint_path if section == "loans" else self.lp_checkpoint_path


@dataclass
class ChainConfig:
    """Per-chain RPC settings.

    Attributes:
        rpc_env_key: Environment variable holding the RPC URL
    """

    rpc_env_key: str

    def __post_init__(self) -> None:
        """Validate chain settings."""
        if not self.rpc_env_key:
            raise ConfigError("rpc_env_key must not be empty")

    @property
    def rpc_url(self) -> str | None:
        """RPC URL from the environment, or None when unset."""
        return os.getenv(self.rpc_env_key) or None


@dataclass
class ContractConfig:
    """A monitored NFT contract (trove NFT or LP position manager).

    Attributes:
        key: Unique selector used on the command line
        chain: Chain id (upper-case)
        protocol: Protocol id (upper-case)
        address: Contract address
        csv_file: Per-contract position CSV path
        start_block_env_key: Env var with the first block to scan when no checkpoint exists
        reference_rate_key: Key into the reference-rate document (loans only)
        section: Config section the contract belongs to ("loans" or "lps")
    """

    key: str
    chain: str
    protocol: str
    address: str
    csv_file: str
    start_block_env_key: str | None = None
    reference_rate_key: str | None = None
    section: str = "loans"

    def __post_init__(self) -> None:
        """Validate and normalize contract settings."""
        if not self.key:
            raise ConfigError("contract key must not be empty")
        if not (self.address.startswith("0x") and len(self.address) == 42):
            raise ConfigError(f"contract {self.key}: invalid address '{self.address}'")
        if self.section not in CONTRACT_SECTIONS:
            raise ConfigError(f"contract {self.key}: invalid section '{self.section}'")
        self.chain = self.chain.upper()
        self.protocol = self.protocol.upper()

    def start_block(self) -> int:
        """First block to scan when no checkpoint exists (0 if unset or invalid)."""
        if not self.start_block_env_key:
            return 0
        raw = os.getenv(self.start_block_env_key, "")
        try:
            value = int(raw)
        except ValueError:
            return 0
        return max(value, 0)


@dataclass
class MinAlertTiers:
    """Minimum tier at which each risk kind raises an alert."""

    liquidation: Tier = Tier.HIGH
    redemption: Tier = Tier.HIGH
    range: Tier = Tier.MEDIUM

    def for_kind(self, kind: RiskKind) -> Tier:
        """Minimum tier for a risk kind."""
        return getattr(self, kind.value)


@dataclass
class CdpConfig:
    """Redemption-window (CDP) price settings.

    Attributes:
        trigger: Price below which redemptions are economically live
        price_mode: POOL (read a Uniswap-v3 pool) or STATIC (configured price)
        token_symbol: Debt token symbol, used to orient the pool price
        pool_address: Pool to read when price_mode is POOL
        pool_chain: Chain of that pool
        price_usd: Static price when price_mode is STATIC
    """

    trigger: float = 1.0
    price_mode: str = "STATIC"
    token_symbol: str = "BOLD"
    pool_address: str | None = None
    pool_chain: str = "ETH"
    price_usd: float | None = None

    def __post_init__(self) -> None:
        """Validate CDP settings."""
        self.trigger = _require_finite("cdp.trigger", self.trigger)
        self.price_mode = str(self.price_mode).upper()
        if self.price_mode not in VALID_PRICE_MODES:
            raise ConfigError(
                f"Invalid cdp.price_mode '{self.price_mode}'. Must be one of: {VALID_PRICE_MODES}"
            )
        if self.price_mode == "POOL" and not self.pool_address:
            raise ConfigError("cdp.pool_address is required when price_mode is POOL")
        if self.price_mode == "STATIC" and self.price_usd is not None:
            self.price_usd = _require_finite("cdp.price_usd", self.price_usd)
        self.pool_chain = self.pool_chain.upper()


@dataclass
class ReferenceRateConfig:
    """Reference interest-rate source settings.

    Attributes:
        url: JSON document with ``branch.<KEY>.interest_rate_avg`` fractions
        ttl_seconds: Cache lifetime for the fetched document
        static: Per-protocol fallback rates in percent
    """

    url: str | None = None
    ttl_seconds: int = 300
    static: dict[str, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate reference-rate settings."""
        if self.ttl_seconds < 0:
            raise ConfigError(f"reference_rates.ttl_seconds must be >= 0, got {self.ttl_seconds}")
        self.static = {
            str(k).upper(): _require_finite(f"reference_rates.static.{k}", v)
            for k, v in self.static.items()
        }


@dataclass
class ChannelConfig:
    """Base notification channel configuration.

    Attributes:
        enabled: Whether the channel is enabled
    """

    enabled: bool = False


@dataclass
class DiscordChannelConfig(ChannelConfig):
    """Discord webhook channel configuration.

    Attributes:
        webhook_url: Discord webhook URL (from env var if not specified)
    """

    webhook_url: str | None = None


@dataclass
class TelegramChannelConfig(ChannelConfig):
    """Telegram bot channel configuration.

    Attributes:
        bot_token: Telegram bot token (from env var if not specified)
        chat_id: Telegram chat ID (from env var if not specified)
    """

    bot_token: str | None = None
    chat_id: str | None = None


@dataclass
class AlertStateConfig:
    """Alert-state repository settings.

    Attributes:
        persist: Keep alert state in DuckDB across restarts
        db_path: DuckDB file used when persist is enabled
    """

    persist: bool = False
    db_path: str = "data/alert_state.duckdb"


@dataclass
class HistoryConfig:
    """Alert history storage configuration.

    Attributes:
        enabled: Whether to store alert history
        db_path: Path to the DuckDB database file
        retention_days: Number of days to retain alerts
    """

    enabled: bool = False
    db_path: str = "data/alert_history.duckdb"
    retention_days: int = 90

    def __post_init__(self) -> None:
        """Validate history settings."""
        if self.retention_days < 1:
            raise ConfigError(f"retention_days must be >= 1, got {self.retention_days}")


@dataclass
class ScheduleConfig:
    """Monitoring cadence.

    Attributes:
        interval_seconds: Seconds between monitoring passes
        heartbeat_interval_hours: Hours between heartbeat summaries (0 disables)
    """

    interval_seconds: int = 300
    heartbeat_interval_hours: float = 24.0

    def __post_init__(self) -> None:
        """Validate schedule values."""
        if self.interval_seconds < 1:
            raise ConfigError(f"interval_seconds must be >= 1, got {self.interval_seconds}")
        if self.heartbeat_interval_hours < 0:
            raise ConfigError(
                f"heartbeat_interval_hours must be >= 0, got {self.heartbeat_interval_hours}"
            )


@dataclass
class LoggingConfig:
    """Logging settings."""

    level: str = "INFO"
    file: str = "logs/positionwatch.log"

    def __post_init__(self) -> None:
        """Validate log level."""
        self.level = str(self.level).upper()
        if self.level not in VALID_LOG_LEVELS:
            raise ConfigError(f"Invalid logging.level '{self.level}'. Must be one of: {VALID_LOG_LEVELS}")


@dataclass
class MonitorConfig:
    """Root configuration for the position monitor.

    Attributes:
        scan: Discovery settings
        chains: Chain id -> RPC settings
        loans: Monitored trove NFT contracts
        lps: Monitored LP position managers
        lp_ignore: Protocol -> token ids excluded from LP monitoring
        thresholds: Classifier thresholds per risk kind
        min_alert_tiers: Minimum alerting tier per risk kind
        cdp: Redemption-window price settings
        reference_rates: Reference interest-rate settings
        channels: Notification channel configurations
        alert_state: Alert-state repository settings
        history: Alert history storage settings
        schedule: Monitoring cadence
        logging: Logging settings
        verbose: Log detailed per-position blocks at INFO
    """

    thresholds: RiskThresholds
    scan: ScanConfig = field(default_factory=ScanConfig)
    chains: dict[str, ChainConfig] = field(default_factory=dict)
    loans: list[ContractConfig] = field(default_factory=list)
    lps: list[ContractConfig] = field(default_factory=list)
    lp_ignore: dict[str, set[int]] = field(default_factory=dict)
    min_alert_tiers: MinAlertTiers = field(default_factory=MinAlertTiers)
    cdp: CdpConfig = field(default_factory=CdpConfig)
    reference_rates: ReferenceRateConfig = field(default_factory=ReferenceRateConfig)
    channels: dict[str, ChannelConfig] = field(default_factory=dict)
    alert_state: AlertStateConfig = field(default_factory=AlertStateConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    verbose: bool = False

    def all_contracts(self) -> list[ContractConfig]:
        """Loan and LP contracts, loans first."""
        return [*self.loans, *self.lps]


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{name}' must be a mapping, got {type(value).__name__}")
    return value


def _parse_thresholds(data: dict[str, Any]) -> RiskThresholds:
    """Parse classifier thresholds; every value is required and finite."""
    try:
        liq = data["liquidation"]
        red = data["redemption"]
        rng = data["range"]
        return RiskThresholds(
            liquidation=LiquidationThresholds(
                warn=_require_finite("thresholds.liquidation.warn", liq["warn"]),
                high=_require_finite("thresholds.liquidation.high", liq["high"]),
                crit=_require_finite("thresholds.liquidation.crit", liq["crit"]),
            ),
            redemption=RedemptionThresholds(
                below_high=_require_finite("thresholds.redemption.below_high", red["below_high"]),
                below_med=_require_finite("thresholds.redemption.below_med", red["below_med"]),
                neutral_abs=_require_finite("thresholds.redemption.neutral_abs", red["neutral_abs"]),
            ),
            range=RangeThresholds(
                edge_warn=_require_finite("thresholds.range.edge_warn", rng["edge_warn"]),
                edge_high=_require_finite("thresholds.range.edge_high", rng["edge_high"]),
                out_warn=_require_finite("thresholds.range.out_warn", rng["out_warn"]),
                out_high=_require_finite("thresholds.range.out_high", rng["out_high"]),
            ),
        )
    except (KeyError, TypeError) as e:
        raise ConfigError(f"Missing threshold value: {e}") from e


def _parse_min_tiers(data: dict[str, Any]) -> MinAlertTiers:
    """Parse minimum alert tiers, rejecting names outside each kind's tier set."""
    defaults = MinAlertTiers()
    tiers = {}
    for kind in RiskKind:
        raw = data.get(kind.value, defaults.for_kind(kind).value)
        try:
            tiers[kind.value] = parse_tier(kind, raw)
        except ValueError as e:
            raise ConfigError(f"min_alert_tiers: {e}") from e
    return MinAlertTiers(**tiers)


def _parse_contracts(section: str, items: list[dict[str, Any]] | None) -> list[ContractConfig]:
    contracts = []
    for item in items or []:
        try:
            contracts.append(
                ContractConfig(
                    key=item["key"],
                    chain=item["chain"],
                    protocol=item["protocol"],
                    address=item["address"],
                    csv_file=item["csv_file"],
                    start_block_env_key=item.get("start_block_env_key"),
                    reference_rate_key=item.get("reference_rate_key"),
                    section=section,
                )
            )
        except KeyError as e:
            raise ConfigError(f"{section}.contracts entry missing field {e}") from e

    keys = [c.key for c in contracts]
    duplicates = {k for k in keys if keys.count(k) > 1}
    if duplicates:
        raise ConfigError(f"Duplicate {section} contract keys: {sorted(duplicates)}")

    # One checkpoint per (chain, protocol) within a section
    pairs = [(c.chain, c.protocol) for c in contracts]
    shared = {p for p in pairs if pairs.count(p) > 1}
    if shared:
        raise ConfigError(
            f"{section} contracts share a chain/protocol pair: "
            f"{sorted(f'{chain}/{protocol}' for chain, protocol in shared)}"
        )
    return contracts


def _parse_lp_ignore(data: dict[str, Any] | None) -> dict[str, set[int]]:
    """Protocol -> token ids excluded from LP monitoring."""
    ignore = {}
    for protocol, ids in (data or {}).items():
        try:
            ignore[str(protocol).upper()] = {int(token_id) for token_id in (ids or [])}
        except (TypeError, ValueError) as e:
            raise ConfigError(f"lps.ignore.{protocol}: token ids must be integers: {e}") from e
    return ignore


def _parse_channels(data: dict[str, Any]) -> dict[str, ChannelConfig]:
    """Parse channel configuration, filling secrets from the environment."""
    channels: dict[str, ChannelConfig] = {}

    telegram = data.get("telegram")
    if telegram is not None:
        channels["telegram"] = TelegramChannelConfig(
            enabled=bool(telegram.get("enabled", False)),
            bot_token=telegram.get("bot_token") or os.getenv("TELEGRAM_BOT_TOKEN"),
            chat_id=str(telegram.get("chat_id") or os.getenv("TELEGRAM_CHAT_ID") or "") or None,
        )

    discord = data.get("discord")
    if discord is not None:
        channels["discord"] = DiscordChannelConfig(
            enabled=bool(discord.get("enabled", False)),
            webhook_url=discord.get("webhook_url") or os.getenv("DISCORD_WEBHOOK_URL"),
        )

    return channels


def parse_monitor_config(raw_config: dict[str, Any]) -> MonitorConfig:
    """Build a validated MonitorConfig from an already-parsed mapping.

    Raises:
        ConfigError: If configuration is invalid or missing required fields.
    """
    if not isinstance(raw_config, dict) or "position_monitor" not in raw_config:
        raise ConfigError("Configuration missing 'position_monitor' section")

    cfg = raw_config["position_monitor"] or {}

    try:
        scan = ScanConfig(**_section(cfg, "scan"))
        chains = {
            str(chain_id).upper(): ChainConfig(**(chain or {}))
            for chain_id, chain in _section(cfg, "chains").items()
        }

        loans_data = _section(cfg, "loans")
        lps_data = _section(cfg, "lps")
        loans = _parse_contracts("loans", loans_data.get("contracts"))
        lps = _parse_contracts("lps", lps_data.get("contracts"))
        lp_ignore = _parse_lp_ignore(lps_data.get("ignore"))

        for contract in [*loans, *lps]:
            if chains and contract.chain not in chains:
                raise ConfigError(
                    f"contract {contract.key}: unknown chain '{contract.chain}'. "
                    f"Configured chains: {sorted(chains)}"
                )

        rates_data = _section(cfg, "reference_rates")
        reference_rates = ReferenceRateConfig(
            url=rates_data.get("url"),
            ttl_seconds=rates_data.get("ttl_seconds", 300),
            static=rates_data.get("static") or {},
        )

        return MonitorConfig(
            scan=scan,
            chains=chains,
            loans=loans,
            lps=lps,
            lp_ignore=lp_ignore,
            thresholds=_parse_thresholds(_section(cfg, "thresholds")),
            min_alert_tiers=_parse_min_tiers(_section(cfg, "min_alert_tiers")),
            cdp=CdpConfig(**_section(cfg, "cdp")),
            reference_rates=reference_rates,
            channels=_parse_channels(_section(cfg, "channels")),
            alert_state=AlertStateConfig(**_section(cfg, "alert_state")),
            history=HistoryConfig(**_section(cfg, "history")),
            schedule=ScheduleConfig(**_section(cfg, "schedule")),
            logging=LoggingConfig(**_section(cfg, "logging")),
            verbose=bool(cfg.get("verbose", False)),
        )
    except TypeError as e:
        # Unknown keys in a section surface as unexpected keyword arguments.
        raise ConfigError(f"Invalid configuration: {e}") from e


def load_monitor_config(config_path: Path) -> MonitorConfig:
    """Load and validate monitor configuration from a YAML file.

    Args:
        config_path: Path to the YAML configuration file.

    Returns:
        Validated MonitorConfig instance.

    Raises:
        ConfigError: If configuration is invalid or missing required fields.
        FileNotFoundError: If config file doesn't exist.
    """
    with open(config_path) as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    return parse_monitor_config(raw_config)
