import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import toml
from loguru import logger


@dataclass
class ChainSettings:
    network_id: str = "1"
    rpc_url: str = ""
    http_timeout_seconds: float = 10.0
    block_poll_interval_seconds: float = 4.0


@dataclass
class ExplorerSettings:
    api_url: str = "https://api.etherscan.io/api"
    api_key: str = ""
    min_interval_seconds: float = 0.25


@dataclass
class MonitorSettings:
    poll_interval_seconds: float = 1.0
    poll_ceiling_seconds: float = 30 * 60
    safe_confirmations: int = 12


@dataclass
class StorageSettings:
    path: str = "data/transactions.json"
    key: str = "transactions"


@dataclass
class LoggingSettings:
    level: str = "INFO"
    file: Optional[str] = None


@dataclass
class OverrideRecord:
    key: str
    source: str
    old: Any
    new: Any


@dataclass
class AppConfig:
    chain: ChainSettings = field(default_factory=ChainSettings)
    explorer: ExplorerSettings = field(default_factory=ExplorerSettings)
    monitor: MonitorSettings = field(default_factory=MonitorSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    overrides: List[OverrideRecord] = field(default_factory=list)
    loaded_files: List[str] = field(default_factory=list)

    @classmethod
    def load(cls, settings_path: Optional[str] = None, env_prefix: str = "TXMON__") -> "AppConfig":
        layers: List[Tuple[Dict[str, Any], str]] = []
        loaded_files: List[str] = []

        if settings_path and os.path.exists(settings_path):
            with open(settings_path, "r", encoding="utf-8") as f:
                layers.append((toml.load(f), os.path.basename(settings_path)))
            loaded_files.append(os.path.basename(settings_path))
        elif settings_path:
            logger.warning(f"[Config] {settings_path} not found; using defaults and environment")

        env_overrides = _load_env_overrides(env_prefix)
        if env_overrides:
            layers.append((env_overrides, "env"))

        merged: Dict[str, Any] = {}
        overrides: List[OverrideRecord] = []
        for payload, source in layers:
            _merge_dicts(merged, payload, source, overrides)

        cfg = cls(
            chain=_build_chain(merged),
            explorer=_build_explorer(merged),
            monitor=_build_monitor(merged),
            storage=_build_storage(merged),
            logging=_build_logging(merged),
            overrides=overrides,
            loaded_files=loaded_files,
        )
        cfg.log_summary()
        return cfg

    def log_summary(self) -> None:
        logger.info(f"[Config] Loaded config files: {', '.join(self.loaded_files) or '<none>'}")
        for o in self.overrides:
            logger.info(f"[Config] Override: {o.key} from {o.source} (old={o.old} -> new={o.new})")
        logger.info(
            f"[Config] Chain: network_id={self.chain.network_id} rpc_url={self.chain.rpc_url or '<unset>'}"
        )
        logger.info(
            f"[Config] Monitor: poll_interval={self.monitor.poll_interval_seconds}s "
            f"ceiling={self.monitor.poll_ceiling_seconds}s "
            f"safe_confirmations={self.monitor.safe_confirmations}"
        )
        logger.info(f"[Config] Storage: {self.storage.path} key={self.storage.key}")


def _merge_dicts(dst: Dict[str, Any], src: Dict[str, Any], source: str, overrides: List[OverrideRecord], prefix: str = "") -> None:
    for key, value in src.items():
        full_key = f"{prefix}.{key}" if prefix else key
        if isinstance(value, dict) and isinstance(dst.get(key), dict):
            _merge_dicts(dst[key], value, source, overrides, full_key)
        elif isinstance(value, dict):
            dst[key] = value.copy()
        else:
            if key in dst and dst[key] != value:
                overrides.append(OverrideRecord(full_key, source, dst[key], value))
            dst[key] = value


def _load_env_overrides(prefix: str) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for env_key, env_val in os.environ.items():
        if not env_key.startswith(prefix):
            continue
        path_parts = env_key[len(prefix):].lower().split("__")
        _assign_env_override(overrides, path_parts, env_val)
    return overrides


def _assign_env_override(dst: Dict[str, Any], path_parts: List[str], raw_val: str) -> None:
    cur = dst
    for part in path_parts[:-1]:
        if part not in cur or not isinstance(cur[part], dict):
            cur[part] = {}
        cur = cur[part]
    leaf = path_parts[-1]
    # Secrets and ids are kept verbatim; "0x01" must not become an int
    if leaf in {"api_key", "network_id", "rpc_url", "api_url", "path", "key"}:
        cur[leaf] = raw_val
        return
    cur[leaf] = _coerce_env_value(raw_val)


def _coerce_env_value(val: str) -> Any:
    lowered = val.lower()
    if lowered in {"true", "false"}:
        return lowered == "true"
    try:
        return int(val)
    except ValueError:
        pass
    try:
        return float(val)
    except ValueError:
        pass
    return val


def _build_chain(cfg: Dict[str, Any]) -> ChainSettings:
    section = cfg.get("chain", {}) or {}
    return ChainSettings(
        network_id=str(section.get("network_id", "1")),
        rpc_url=str(section.get("rpc_url", "")),
        http_timeout_seconds=_positive(section.get("http_timeout_seconds", 10.0), "chain.http_timeout_seconds"),
        block_poll_interval_seconds=_positive(
            section.get("block_poll_interval_seconds", 4.0), "chain.block_poll_interval_seconds"
        ),
    )


def _build_explorer(cfg: Dict[str, Any]) -> ExplorerSettings:
    section = cfg.get("explorer", {}) or {}
    return ExplorerSettings(
        api_url=str(section.get("api_url", "https://api.etherscan.io/api")),
        api_key=str(section.get("api_key", "")),
        min_interval_seconds=float(section.get("min_interval_seconds", 0.25)),
    )


def _build_monitor(cfg: Dict[str, Any]) -> MonitorSettings:
    section = cfg.get("monitor", {}) or {}
    interval = _positive(section.get("poll_interval_seconds", 1.0), "monitor.poll_interval_seconds")
    ceiling = _positive(section.get("poll_ceiling_seconds", 30 * 60), "monitor.poll_ceiling_seconds")
    if ceiling < interval:
        raise ValueError(
            f"monitor.poll_ceiling_seconds ({ceiling}) must be >= monitor.poll_interval_seconds ({interval})"
        )
    safe = section.get("safe_confirmations", 12)
    if isinstance(safe, bool) or not isinstance(safe, int) or safe < 0:
        raise ValueError(f"monitor.safe_confirmations must be a non-negative integer, got {safe!r}")
    return MonitorSettings(poll_interval_seconds=interval, poll_ceiling_seconds=ceiling, safe_confirmations=safe)


def _build_storage(cfg: Dict[str, Any]) -> StorageSettings:
    section = cfg.get("storage", {}) or {}
    key = str(section.get("key", "transactions")).strip()
    if not key:
        raise ValueError("storage.key must not be empty")
    return StorageSettings(path=str(section.get("path", "data/transactions.json")), key=key)


def _build_logging(cfg: Dict[str, Any]) -> LoggingSettings:
    section = cfg.get("logging", {}) or {}
    return LoggingSettings(level=str(section.get("level", "INFO")).upper(), file=section.get("file"))


def _positive(value: Any, label: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid number for {label}: {value}") from exc
    if number <= 0:
        raise ValueError(f"{label} must be > 0, got {value}")
    return number
