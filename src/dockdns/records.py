"""Record model and the DNS provider capability.

Every backend speaks in terms of :class:`Record`; the reconciler only ever
talks to a backend through the :class:`Provider` interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Optional, Tuple

# =============================================================================
# Enums
# =============================================================================


class RecordType(Enum):
    """Address record types managed by dockdns."""

    A = "A"
    AAAA = "AAAA"


class Source(Enum):
    """Where a desired domain record came from.

    STATIC: declared in the configuration file.
    DISCOVERED: derived from container labels, regenerated every pass.
    """

    STATIC = "static"
    DISCOVERED = "discovered"


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class Record:
    """A DNS resource record as held by a provider."""

    name: str
    type: RecordType
    value: str
    ttl: Optional[int] = None
    proxied: Optional[bool] = None
    id: Optional[str] = None

    @property
    def key(self) -> Tuple[str, RecordType]:
        return (self.name, self.type)

    def matches(self, other: "Record") -> bool:
        """Compare content, ignoring fields either side does not carry."""
        if self.key != other.key or self.value != other.value:
            return False
        if self.ttl is not None and other.ttl is not None and self.ttl != other.ttl:
            return False
        if (
            self.proxied is not None
            and other.proxied is not None
            and self.proxied != other.proxied
        ):
            return False
        return True

    def __str__(self) -> str:
        return f"{self.type.value} {self.name} -> {self.value}"


@dataclass(frozen=True)
class DomainRecord:
    """A desired domain, either configured statically or discovered."""

    name: str
    a: Optional[str] = None
    aaaa: Optional[str] = None
    ttl: Optional[int] = None
    proxied: Optional[bool] = None
    source: Source = Source.STATIC

    def value_for(self, record_type: RecordType) -> Optional[str]:
        return self.a if record_type == RecordType.A else self.aaaa


@dataclass(frozen=True)
class DNSConfig:
    """Gates which record types are managed at all."""

    enable_ipv4: bool = True
    enable_ipv6: bool = False
    default_ttl: int = 300
    purge_unknown: bool = False

    def is_enabled(self, record_type: RecordType) -> bool:
        if record_type == RecordType.A:
            return self.enable_ipv4
        if record_type == RecordType.AAAA:
            return self.enable_ipv6
        return False

    def enabled_types(self) -> Iterator[RecordType]:
        if self.enable_ipv4:
            yield RecordType.A
        if self.enable_ipv6:
            yield RecordType.AAAA


# =============================================================================
# DNS Provider Interface
# =============================================================================


class Provider(ABC):
    """Abstract base class for DNS providers.

    One instance is bound to exactly one zone. Implementations raise
    :class:`~dockdns.errors.ProviderError` when a backend call fails and are
    responsible for retrying transient errors themselves.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the provider name for logging."""
        pass

    @abstractmethod
    def list(self) -> List[Record]:
        """Return all A/AAAA records currently held for the zone."""
        pass

    @abstractmethod
    def upsert(self, record: Record) -> None:
        """Create or update the record keyed by (name, type)."""
        pass

    @abstractmethod
    def delete(self, record: Record) -> None:
        """Remove the record. Removing an absent record is not an error."""
        pass


def zone_for(domain: str, zone_names: List[str]) -> Optional[str]:
    """Return the most specific zone a domain name belongs to, if any."""
    best: Optional[str] = None
    for zone in zone_names:
        if domain == zone or domain.endswith("." + zone):
            if best is None or len(zone) > len(best):
                best = zone
    return best
