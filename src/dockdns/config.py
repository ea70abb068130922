"""Configuration loading.

The configuration is a single YAML file::

    interval: 600
    log:
      level: info            # debug, info, warn, error
      format: simple         # simple or json
    dns:
      a: true
      aaaa: false
      defaultTTL: 300
      purgeUnknown: false
    status:
      enabled: true
      host: 0.0.0.0
      port: 8080
    docker:
      enabled: true
      labelPrefix: dockdns
    zones:
      - name: example.com
        provider: cloudflare
        apiToken: ${CF_API_TOKEN}
        zoneID: 0123456789abcdef
    domains:
      - name: api.example.com
        a: 10.0.0.1
        ttl: 120

Environment variables:

    DOCKDNS_CONFIG       Path to the configuration file (default: config.yaml)
    DOCKDNS_LOG_LEVEL    Overrides log.level
    DOCKDNS_LOG_FORMAT   Overrides log.format
    DOCKDNS_INTERVAL     Overrides interval

``${VAR}`` references inside zone settings are expanded from the environment
so that API tokens do not need to live in the file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import yaml

from dockdns.errors import ConfigError
from dockdns.records import DNSConfig, DomainRecord, Source

LOG_FORMATS = ("simple", "json")

DEFAULT_CONFIG_PATH = "config.yaml"
DEFAULT_INTERVAL = 600


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class LogConfig:
    level: str = "info"
    format: str = "simple"


@dataclass(frozen=True)
class StatusConfig:
    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 8080


@dataclass(frozen=True)
class DockerConfig:
    enabled: bool = True
    label_prefix: str = "dockdns"


@dataclass(frozen=True)
class ZoneConfig:
    """A zone and the settings of the provider that owns it."""

    name: str
    provider: str
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AppConfig:
    interval: int = DEFAULT_INTERVAL
    log: LogConfig = field(default_factory=LogConfig)
    dns: DNSConfig = field(default_factory=DNSConfig)
    status: StatusConfig = field(default_factory=StatusConfig)
    docker: DockerConfig = field(default_factory=DockerConfig)
    zones: List[ZoneConfig] = field(default_factory=list)
    domains: List[DomainRecord] = field(default_factory=list)


# =============================================================================
# Utility Functions
# =============================================================================


def _parse_bool(value: Any, *, default: bool = True) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "y", "on"}


def _parse_int(value: Any, what: str, *, default: Optional[int] = None) -> Optional[int]:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{what} must be an integer, got {value!r}")


def _section(raw: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = raw.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{key}' must be a mapping")
    return value


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _expand(value: Any) -> Any:
    return os.path.expandvars(value) if isinstance(value, str) else value


# =============================================================================
# Section Parsers
# =============================================================================


def _parse_zones(raw: Any) -> List[ZoneConfig]:
    if not raw:
        raise ConfigError("no zone configuration found")
    if not isinstance(raw, list):
        raise ConfigError("'zones' must be a list")

    zones: List[ZoneConfig] = []
    seen = set()
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ConfigError(f"zone #{index + 1} must be a mapping")
        name = str(item.get("name") or "").strip().rstrip(".").lower()
        provider = str(item.get("provider") or "").strip().lower()
        if not name:
            raise ConfigError(f"zone #{index + 1} is missing a name")
        if not provider:
            raise ConfigError(f"zone {name} has not set the provider")
        if name in seen:
            raise ConfigError(f"zone {name} is configured more than once")
        seen.add(name)
        options = {
            key: _expand(value) for key, value in item.items() if key not in ("name", "provider")
        }
        zones.append(ZoneConfig(name=name, provider=provider, options=options))
    return zones


def parse_domain(item: Mapping[str, Any], source: Source = Source.STATIC) -> DomainRecord:
    """Build a desired domain record from a config entry or label set."""
    name = str(item.get("name") or "").strip().rstrip(".").lower()
    if not name:
        raise ConfigError("domain entry is missing a name")
    proxied = item.get("proxied")
    return DomainRecord(
        name=name,
        a=_optional_str(item.get("a")),
        aaaa=_optional_str(item.get("aaaa")),
        ttl=_parse_int(item.get("ttl"), f"ttl of domain {name}"),
        proxied=None if proxied is None else _parse_bool(proxied, default=False),
        source=source,
    )


def _parse_domains(raw: Any) -> List[DomainRecord]:
    if not raw:
        return []
    if not isinstance(raw, list):
        raise ConfigError("'domains' must be a list")
    domains: List[DomainRecord] = []
    for item in raw:
        if not isinstance(item, dict):
            raise ConfigError(f"domain entry must be a mapping, got {item!r}")
        domains.append(parse_domain(item))
    return domains


def parse_config(raw: Any, env: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Validate a parsed YAML document and apply environment overrides."""
    env = os.environ if env is None else env
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError("configuration root must be a mapping")

    interval = _parse_int(
        env.get("DOCKDNS_INTERVAL") or raw.get("interval"), "interval", default=DEFAULT_INTERVAL
    )
    if interval is None or interval <= 0:
        raise ConfigError(f"interval must be positive, got {interval}")

    log_raw = _section(raw, "log")
    log = LogConfig(
        level=str(env.get("DOCKDNS_LOG_LEVEL") or log_raw.get("level") or "info").lower(),
        format=str(env.get("DOCKDNS_LOG_FORMAT") or log_raw.get("format") or "simple").lower(),
    )
    if log.format not in LOG_FORMATS:
        raise ConfigError(f"log format must be one of {', '.join(LOG_FORMATS)}, got {log.format}")

    dns_raw = _section(raw, "dns")
    dns = DNSConfig(
        enable_ipv4=_parse_bool(dns_raw.get("a"), default=True),
        enable_ipv6=_parse_bool(dns_raw.get("aaaa"), default=False),
        default_ttl=_parse_int(dns_raw.get("defaultTTL"), "dns.defaultTTL", default=300),
        purge_unknown=_parse_bool(dns_raw.get("purgeUnknown"), default=False),
    )

    status_raw = _section(raw, "status")
    status = StatusConfig(
        enabled=_parse_bool(status_raw.get("enabled"), default=True),
        host=str(status_raw.get("host") or "0.0.0.0"),
        port=_parse_int(status_raw.get("port"), "status.port", default=8080),
    )

    docker_raw = _section(raw, "docker")
    docker = DockerConfig(
        enabled=_parse_bool(docker_raw.get("enabled"), default=True),
        label_prefix=str(docker_raw.get("labelPrefix") or "dockdns").strip(),
    )

    return AppConfig(
        interval=interval,
        log=log,
        dns=dns,
        status=status,
        docker=docker,
        zones=_parse_zones(raw.get("zones")),
        domains=_parse_domains(raw.get("domains")),
    )


def load_config(path: str, env: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Read and validate the YAML configuration file at ``path``."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"failed to read config {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e
    return parse_config(raw, env)
