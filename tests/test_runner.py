"""Unit tests for the Runner loop."""

import logging
import threading
from typing import Dict

from conftest import MockProvider

from dockdns.records import DNSConfig, DomainRecord, Provider, Record, RecordType
from dockdns.resolver import DesiredStateResolver
from dockdns.runner import Runner

LOG = logging.getLogger("dockdns.tests")

A = RecordType.A


class ExplodingProvider(MockProvider):
    def list(self):
        raise RuntimeError("unexpected bug")


def make_runner(
    providers: Dict[str, Provider],
    domains,
    *,
    dns_config: DNSConfig | None = None,
    interval: float = 60,
) -> Runner:
    resolver = DesiredStateResolver(domains, list(providers), log=LOG)
    return Runner(
        providers=providers,
        resolver=resolver,
        dns_config=dns_config or DNSConfig(enable_ipv4=True, purge_unknown=True),
        interval=interval,
        log=LOG,
    )


def test_run_once_reconciles_every_zone() -> None:
    zone_a = MockProvider()
    zone_b = MockProvider()
    runner = make_runner(
        {"example.com": zone_a, "other.org": zone_b},
        [DomainRecord("api.example.com", a="10.0.0.1"), DomainRecord("www.other.org", a="10.0.0.2")],
    )

    results = runner.run_once()

    assert set(results) == {"example.com", "other.org"}
    assert zone_a.values() == {("api.example.com", A, "10.0.0.1")}
    assert zone_b.values() == {("www.other.org", A, "10.0.0.2")}


def test_no_cross_zone_leakage() -> None:
    """A record in one zone is never created or deleted because of another zone's domains."""
    zone_a = MockProvider([Record("legacy.example.com", A, "10.0.0.9", ttl=300)])
    zone_b = MockProvider()
    runner = make_runner(
        {"example.com": zone_a, "other.org": zone_b},
        [DomainRecord("www.other.org", a="10.0.0.2"), DomainRecord("legacy.example.com", a="10.0.0.9")],
    )

    runner.run_once()

    assert zone_a.deletes == []
    assert zone_a.upserts == []
    assert zone_b.values() == {("www.other.org", A, "10.0.0.2")}


def test_failing_zone_does_not_stop_other_zones() -> None:
    broken = ExplodingProvider()
    unreachable = MockProvider(failing_lists={1})
    healthy = MockProvider()
    runner = make_runner(
        {"broken.net": broken, "unreachable.org": unreachable, "example.com": healthy},
        [DomainRecord("api.example.com", a="10.0.0.1")],
    )

    results = runner.run_once()

    assert "broken.net" not in results
    assert results["unreachable.org"].skipped is True
    assert healthy.values() == {("api.example.com", A, "10.0.0.1")}


def test_run_makes_immediate_first_pass_and_stops_on_cancel() -> None:
    stop_event = threading.Event()
    runner = make_runner({"example.com": MockProvider()}, [], interval=3600)
    passes = []

    def run_once():
        passes.append(1)
        stop_event.set()
        return {}

    runner.run_once = run_once  # type: ignore[method-assign]

    thread = threading.Thread(target=runner.run, args=(stop_event,))
    thread.start()
    thread.join(timeout=5)

    assert not thread.is_alive()
    assert len(passes) == 1


def test_run_repeats_on_interval_until_cancelled() -> None:
    stop_event = threading.Event()
    runner = make_runner({"example.com": MockProvider()}, [], interval=0.01)
    passes = []

    def run_once():
        passes.append(1)
        if len(passes) == 3:
            stop_event.set()
        return {}

    runner.run_once = run_once  # type: ignore[method-assign]
    runner.run(stop_event)

    assert len(passes) == 3


def test_ip_lookup_is_cleared_every_pass() -> None:
    class CountingLookup:
        def __init__(self):
            self.clears = 0

        def clear(self):
            self.clears += 1

        def get(self, record_type):
            return "203.0.113.7"

    lookup = CountingLookup()
    runner = make_runner({"example.com": MockProvider()}, [DomainRecord("api.example.com")])
    runner.ip_lookup = lookup  # type: ignore[assignment]

    runner.run_once()
    runner.run_once()

    assert lookup.clears == 2


def test_provider_error_during_upsert_is_not_fatal() -> None:
    provider = MockProvider(failing_names={"api.example.com"})
    runner = make_runner({"example.com": provider}, [DomainRecord("api.example.com", a="10.0.0.1")])

    results = runner.run_once()

    assert results["example.com"].failed == 1


def test_nested_zones_on_one_backend_are_stable() -> None:
    shared = MockProvider([Record("api.lab.example.com", A, "10.0.0.3", ttl=300)])
    runner = make_runner(
        {"example.com": shared, "lab.example.com": shared},
        [DomainRecord("www.example.com", a="10.0.0.1"), DomainRecord("api.lab.example.com", a="10.0.0.3")],
    )

    first = runner.run_once()
    second = runner.run_once()

    assert first["example.com"].created == 1
    assert first["lab.example.com"].changes == 0
    assert second["example.com"].changes == 0
    assert second["lab.example.com"].changes == 0
    assert shared.deletes == []
    assert shared.values() == {
        ("www.example.com", A, "10.0.0.1"),
        ("api.lab.example.com", A, "10.0.0.3"),
    }


def test_failed_pass_does_not_end_the_loop() -> None:
    stop_event = threading.Event()
    runner = make_runner({"example.com": MockProvider()}, [], interval=0.01)
    passes = []

    def run_once():
        passes.append(1)
        if len(passes) == 1:
            raise RuntimeError("resolver exploded")
        stop_event.set()
        return {}

    runner.run_once = run_once  # type: ignore[method-assign]
    runner.run(stop_event)

    assert len(passes) == 2
