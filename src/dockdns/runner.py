"""Periodic reconciliation loop."""

from __future__ import annotations

import logging
import threading
from typing import Dict, Optional

from dockdns.reconciler import ReconcileResult, ZoneReconciler
from dockdns.records import DNSConfig, Provider
from dockdns.resolver import DesiredStateResolver, PublicIPLookup


class Runner:
    """Reconciles every configured zone, once per interval.

    Zones are processed sequentially, so a zone's provider is only ever used
    by one pass at a time and passes never overlap.
    """

    def __init__(
        self,
        *,
        providers: Dict[str, Provider],
        resolver: DesiredStateResolver,
        dns_config: DNSConfig,
        interval: float,
        log: logging.Logger,
        ip_lookup: Optional[PublicIPLookup] = None,
    ):
        self.providers = providers
        self.resolver = resolver
        self.dns_config = dns_config
        self.interval = interval
        self.log = log
        self.ip_lookup = ip_lookup

    def run_once(self) -> Dict[str, ReconcileResult]:
        if self.ip_lookup is not None:
            self.ip_lookup.clear()

        desired = self.resolver.resolve()
        results: Dict[str, ReconcileResult] = {}
        for zone, provider in self.providers.items():
            domains = desired.get(zone, [])
            self.log.debug(
                f"Reconciling zone {zone} ({provider.name}) with {len(domains)} desired domain(s)"
            )
            reconciler = ZoneReconciler(
                zone,
                provider,
                self.dns_config,
                self.log,
                ip_lookup=self.ip_lookup,
                zone_names=list(self.providers),
            )
            try:
                results[zone] = reconciler.reconcile(domains)
            except Exception as e:
                self.log.error(f"DNS update failed for zone {zone}: {e}", exc_info=True)
                continue
            self.log.info(f"Reconciled {results[zone]}")
        return results

    def _run_pass(self) -> None:
        try:
            self.run_once()
        except Exception as e:
            self.log.error(f"DNS update pass failed, retrying next interval: {e}", exc_info=True)

    def run(self, stop_event: threading.Event) -> None:
        """Run a pass immediately, then every interval until stop_event is set."""
        self.log.info(
            f"Starting DNS updater, updating DNS entries every {self.interval} seconds"
        )
        self._run_pass()
        while not stop_event.wait(self.interval):
            self._run_pass()
        self.log.info("Received termination signal. Exiting DNS updater...")
