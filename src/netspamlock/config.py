# src/netspamlock/config.py
import json, os, re
from dataclasses import dataclass, field
from typing import List, Optional

from netspamlock.errors import ConfigError
from netspamlock.utils.persistence import DEFAULT_BLOCKED_LOG

CONFIG_ENV = "NETSPAMLOCK_CONFIG"
DEFAULT_CONFIG_PATH = "config.json"
DEFAULT_GEO_URL = "http://freegeoip.net/csv/{address}"
STORE_BACKENDS = ("ipset", "json")
THRESHOLD_RE = re.compile(r"\+?[0-9]+")


def parse_threshold(raw) -> int:
    """
    Turn a raw ConnectionNumberThreshold value into a non-negative int.
    A missing or unparseable threshold is fatal: treating it as zero would
    block every observed peer.
    """
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise ConfigError("ConnectionNumberThreshold is not configured")
    if isinstance(raw, bool):
        raise ConfigError(f"ConnectionNumberThreshold must be an integer, got {raw!r}")
    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, str) and THRESHOLD_RE.fullmatch(raw.strip()):
        value = int(raw.strip())
    else:
        raise ConfigError(f"ConnectionNumberThreshold must be an integer, got {raw!r}")
    if value < 0:
        raise ConfigError(f"ConnectionNumberThreshold must be non-negative, got {value}")
    return value


def _as_bool(key, raw, default):
    if raw is None:
        return default
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str) and raw.strip().lower() in ("true", "yes", "1", "false", "no", "0"):
        return raw.strip().lower() in ("true", "yes", "1")
    raise ConfigError(f"{key} must be a boolean, got {raw!r}")


@dataclass
class Config:
    threshold_raw: object = None
    rule_name: Optional[str] = None
    store_backend: str = "ipset"
    store_path: str = "rules.json"
    lock_path: str = "/tmp/netspamlock.lock"
    blocked_log: str = DEFAULT_BLOCKED_LOG
    geo_url: str = DEFAULT_GEO_URL
    geo_timeout: float = 10.0
    inbound_only: bool = True
    include_broadcast: bool = True
    self_addresses: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict):
            raise ConfigError("Configuration must be a JSON object")
        backend = data.get("RuleStore", "ipset")
        if backend not in STORE_BACKENDS:
            raise ConfigError(f"RuleStore must be one of {', '.join(STORE_BACKENDS)}, got {backend!r}")
        extra = data.get("SelfAddresses", [])
        if not isinstance(extra, list):
            raise ConfigError("SelfAddresses must be a list of addresses")
        geo_url = data.get("GeoUrl", DEFAULT_GEO_URL) or ""
        if not isinstance(geo_url, str):
            raise ConfigError(f"GeoUrl must be a string, got {geo_url!r}")
        if geo_url:
            try:
                geo_url.format(address="192.0.2.1")
            except (KeyError, IndexError, ValueError):
                raise ConfigError(f"GeoUrl must only use the {{address}} placeholder, got {geo_url!r}")
        try:
            geo_timeout = float(data.get("GeoTimeout", 10))
        except (TypeError, ValueError):
            raise ConfigError(f"GeoTimeout must be a number, got {data.get('GeoTimeout')!r}")
        return cls(
            threshold_raw=data.get("ConnectionNumberThreshold"),
            rule_name=data.get("FirewallRuleName"),
            store_backend=backend,
            store_path=data.get("RuleStorePath", "rules.json"),
            lock_path=data.get("LockPath", "/tmp/netspamlock.lock"),
            blocked_log=data.get("BlockedLogPath", DEFAULT_BLOCKED_LOG),
            geo_url=geo_url,
            geo_timeout=geo_timeout,
            inbound_only=_as_bool("InboundOnly", data.get("InboundOnly"), True),
            include_broadcast=_as_bool("IncludeBroadcastSentinel",
                                       data.get("IncludeBroadcastSentinel"), True),
            self_addresses=[str(a) for a in extra],
        )

    def threshold(self) -> int:
        return parse_threshold(self.threshold_raw)

    def require_rule_name(self) -> str:
        name = (self.rule_name or "").strip() if isinstance(self.rule_name, str) else ""
        if not name:
            raise ConfigError("FirewallRuleName is not configured")
        return name


def load_config(path=None) -> Config:
    """
    Read the JSON configuration file. A missing default config.json yields
    defaults; a missing file that was asked for explicitly is an error.
    """
    explicit = path or os.environ.get(CONFIG_ENV)
    path = explicit or DEFAULT_CONFIG_PATH
    if not os.path.exists(path):
        if explicit:
            raise ConfigError(f"Configuration file {path} does not exist")
        return Config()
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid configuration file {path}: {e}")
    except OSError as e:
        raise ConfigError(f"Cannot read configuration file {path}: {e}")
    return Config.from_dict(data)
