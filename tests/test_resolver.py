"""Unit tests for desired-state resolution and the public IP lookup."""

import logging
from typing import List
from unittest.mock import MagicMock

import requests

from dockdns.errors import DiscoveryUnavailable
from dockdns.records import DomainRecord, RecordType, Source
from dockdns.resolver import DesiredStateResolver, PublicIPLookup

LOG = logging.getLogger("dockdns.tests")

ZONES = ["example.com", "other.org"]


class StaticDiscovery:
    name = "Static"

    def __init__(self, domains: List[DomainRecord] | None = None, fail: bool = False):
        self._domains = domains or []
        self._fail = fail
        self.calls = 0

    def discover(self) -> List[DomainRecord]:
        self.calls += 1
        if self._fail:
            raise DiscoveryUnavailable("docker daemon not reachable")
        return list(self._domains)


def static(name: str, a: str = "10.0.0.1") -> DomainRecord:
    return DomainRecord(name=name, a=a, source=Source.STATIC)


def discovered(name: str, a: str = "10.0.0.2") -> DomainRecord:
    return DomainRecord(name=name, a=a, source=Source.DISCOVERED)


# =============================================================================
# Desired-State Resolver
# =============================================================================


def test_resolve_groups_domains_by_zone() -> None:
    resolver = DesiredStateResolver(
        [static("api.example.com"), static("www.other.org")],
        ZONES,
        discovery=StaticDiscovery([discovered("app.example.com")]),
        log=LOG,
    )

    desired = resolver.resolve()

    assert [d.name for d in desired["example.com"]] == ["api.example.com", "app.example.com"]
    assert [d.name for d in desired["other.org"]] == ["www.other.org"]


def test_every_zone_is_present_even_without_domains() -> None:
    resolver = DesiredStateResolver([], ZONES, log=LOG)

    assert resolver.resolve() == {"example.com": [], "other.org": []}


def test_static_takes_precedence_over_discovered() -> None:
    resolver = DesiredStateResolver(
        [static("api.example.com", a="10.0.0.1")],
        ZONES,
        discovery=StaticDiscovery([discovered("api.example.com", a="10.0.0.99")]),
        log=LOG,
    )

    desired = resolver.resolve()

    assert desired["example.com"] == [static("api.example.com", a="10.0.0.1")]


def test_duplicate_names_keep_first_entry() -> None:
    resolver = DesiredStateResolver(
        [static("api.example.com", a="10.0.0.1"), static("api.example.com", a="10.0.0.5")],
        ZONES,
        discovery=StaticDiscovery(
            [discovered("app.example.com", a="10.0.0.2"), discovered("app.example.com", a="10.0.0.3")]
        ),
        log=LOG,
    )

    desired = resolver.resolve()["example.com"]

    assert [(d.name, d.a) for d in desired] == [
        ("api.example.com", "10.0.0.1"),
        ("app.example.com", "10.0.0.2"),
    ]


def test_discovery_unavailable_degrades_to_static_only() -> None:
    discovery = StaticDiscovery(fail=True)
    resolver = DesiredStateResolver([static("api.example.com")], ZONES, discovery=discovery, log=LOG)

    desired = resolver.resolve()

    assert discovery.calls == 1
    assert desired["example.com"] == [static("api.example.com")]


def test_domains_outside_every_zone_are_dropped() -> None:
    resolver = DesiredStateResolver([static("api.elsewhere.net")], ZONES, log=LOG)

    assert resolver.resolve() == {"example.com": [], "other.org": []}


def test_discovered_records_are_regenerated_every_pass() -> None:
    discovery = StaticDiscovery([discovered("app.example.com")])
    resolver = DesiredStateResolver([], ZONES, discovery=discovery, log=LOG)

    assert len(resolver.resolve()["example.com"]) == 1
    discovery._domains = []
    assert resolver.resolve()["example.com"] == []


# =============================================================================
# Public IP Lookup
# =============================================================================


def make_session(ip: str = "203.0.113.7") -> MagicMock:
    session = MagicMock()
    response = MagicMock()
    response.raise_for_status = MagicMock()
    response.json.return_value = {"ip": ip}
    session.get.return_value = response
    return session


def test_public_ip_lookup_caches_until_cleared() -> None:
    session = make_session()
    lookup = PublicIPLookup(session, log=LOG)

    assert lookup.get(RecordType.A) == "203.0.113.7"
    assert lookup.get(RecordType.A) == "203.0.113.7"
    assert session.get.call_count == 1

    lookup.clear()
    lookup.get(RecordType.A)
    assert session.get.call_count == 2


def test_public_ip_lookup_uses_ipv6_endpoint() -> None:
    session = make_session("2001:db8::1")
    lookup = PublicIPLookup(session, log=LOG)

    assert lookup.get(RecordType.AAAA) == "2001:db8::1"
    session.get.assert_called_once_with("https://api6.ipify.org?format=json", timeout=5.0)


def test_public_ip_lookup_failure_returns_none() -> None:
    session = MagicMock()
    session.get.side_effect = requests.exceptions.ConnectionError("offline")
    lookup = PublicIPLookup(session, log=LOG)

    assert lookup.get(RecordType.A) is None
    assert lookup.get(RecordType.A) is None
    assert session.get.call_count == 1
