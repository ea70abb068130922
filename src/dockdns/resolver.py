"""Desired-state resolution.

Merges statically configured domains with domains discovered from container
labels into one desired set per zone, and looks up the public addresses used
for domains that do not pin their own.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Protocol

import requests

from dockdns.errors import DiscoveryUnavailable
from dockdns.records import DomainRecord, RecordType, zone_for

logger = logging.getLogger(__name__)

IPIFY_URLS = {
    RecordType.A: "https://api.ipify.org?format=json",
    RecordType.AAAA: "https://api6.ipify.org?format=json",
}


class DiscoverySource(Protocol):
    name: str

    def discover(self) -> List[DomainRecord]:
        ...


# =============================================================================
# Desired-State Resolver
# =============================================================================


class DesiredStateResolver:
    """Builds the desired domain records of every zone for one pass.

    Static configuration wins over discovery: a discovered domain whose name
    is also configured statically is dropped.
    """

    def __init__(
        self,
        static_domains: List[DomainRecord],
        zone_names: List[str],
        discovery: Optional[DiscoverySource] = None,
        log: Optional[logging.Logger] = None,
    ):
        self.static_domains = list(static_domains)
        self.zone_names = list(zone_names)
        self.discovery = discovery
        self._log = log or logger

    def _discovered(self) -> List[DomainRecord]:
        if self.discovery is None:
            return []
        try:
            return self.discovery.discover()
        except DiscoveryUnavailable as e:
            self._log.warning(f"Discovery unavailable, using static configuration only: {e}")
            return []

    def _assign(self, desired: Dict[str, List[DomainRecord]], domain: DomainRecord) -> None:
        zone = zone_for(domain.name, self.zone_names)
        if zone is None:
            self._log.warning(f"Domain '{domain.name}' does not belong to any zone, skipping")
            return
        desired[zone].append(domain)

    def resolve(self) -> Dict[str, List[DomainRecord]]:
        """Return the desired domain records keyed by zone name."""
        desired: Dict[str, List[DomainRecord]] = {zone: [] for zone in self.zone_names}

        static_names = set()
        for domain in self.static_domains:
            if domain.name in static_names:
                self._log.warning(
                    f"Domain '{domain.name}' configured more than once, using the first entry"
                )
                continue
            static_names.add(domain.name)
            self._assign(desired, domain)

        discovered_names = set()
        for domain in self._discovered():
            if domain.name in static_names:
                self._log.debug(
                    f"Ignoring discovered domain '{domain.name}', it is configured statically"
                )
                continue
            if domain.name in discovered_names:
                self._log.warning(
                    f"Domain '{domain.name}' discovered more than once, using the first entry"
                )
                continue
            discovered_names.add(domain.name)
            self._assign(desired, domain)

        return desired


# =============================================================================
# Public IP Lookup
# =============================================================================


class PublicIPLookup:
    """Looks up this host's public addresses, cached for one pass."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        *,
        timeout: float = 5.0,
        log: Optional[logging.Logger] = None,
    ):
        self._session = session or requests.Session()
        self._timeout = timeout
        self._log = log or logger
        self._cache: Dict[RecordType, Optional[str]] = {}

    def clear(self) -> None:
        self._cache.clear()

    def get(self, record_type: RecordType) -> Optional[str]:
        if record_type not in self._cache:
            self._cache[record_type] = self._fetch(record_type)
        return self._cache[record_type]

    def _fetch(self, record_type: RecordType) -> Optional[str]:
        try:
            response = self._session.get(IPIFY_URLS[record_type], timeout=self._timeout)
            response.raise_for_status()
            ip = response.json()["ip"]
        except (requests.exceptions.RequestException, ValueError, KeyError, TypeError) as e:
            self._log.warning(
                f"Failed to get public {record_type.value} address, "
                f"domains without an explicit value will be skipped: {e}"
            )
            return None
        self._log.info(f"Current public {record_type.value} address is: {ip}")
        return ip
