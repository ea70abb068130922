"""Per-zone reconciliation.

A pass over one zone runs in two phases, always in this order:

1. Sync: create or update one record per desired domain and enabled type.
2. Purge: delete provider records whose name is not desired, or whose type
   is disabled. Purging only looks at name and type; a stale value on a
   desired name/type has already been corrected by the sync phase.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple

from dockdns.errors import ProviderError
from dockdns.records import DNSConfig, DomainRecord, Provider, Record, RecordType, zone_for
from dockdns.resolver import PublicIPLookup


@dataclass
class ReconcileResult:
    """Outcome of reconciling one zone."""

    zone: str
    created: int = 0
    updated: int = 0
    deleted: int = 0
    failed: int = 0
    skipped: bool = False
    purge_aborted: bool = False

    @property
    def changes(self) -> int:
        return self.created + self.updated + self.deleted

    def __str__(self) -> str:
        if self.skipped:
            return f"zone {self.zone}: skipped"
        summary = (
            f"zone {self.zone}: {self.created} created, {self.updated} updated, "
            f"{self.deleted} deleted, {self.failed} failed"
        )
        return summary + (" (purge aborted)" if self.purge_aborted else "")


def contains_record(domains: List[DomainRecord], record: Record, dns_config: DNSConfig) -> bool:
    """Check if a desired domain with the same name manages this record's type."""
    for domain in domains:
        if domain.name == record.name:
            if dns_config.enable_ipv4 and record.type == RecordType.A:
                return True
            if dns_config.enable_ipv6 and record.type == RecordType.AAAA:
                return True
    return False


class ZoneReconciler:
    """Drives one zone's provider towards its desired domain records."""

    def __init__(
        self,
        zone: str,
        provider: Provider,
        dns_config: DNSConfig,
        log: logging.Logger,
        ip_lookup: Optional[PublicIPLookup] = None,
        zone_names: Optional[List[str]] = None,
    ):
        self.zone = zone
        self.provider = provider
        self.dns_config = dns_config
        self.log = log
        self.ip_lookup = ip_lookup
        self.zone_names = zone_names or [zone]

    def _list(self) -> List[Record]:
        """List the provider records owned by this zone.

        A backend shared by nested zones reports the records of the more
        specific zones too. Those belong to the zone they are most specific to.
        """
        return [
            r for r in self.provider.list() if zone_for(r.name, self.zone_names) in (self.zone, None)
        ]

    def reconcile(self, desired: List[DomainRecord]) -> ReconcileResult:
        result = ReconcileResult(zone=self.zone)
        try:
            actual = self._list()
        except ProviderError as e:
            self.log.error(f"Failed to fetch records for zone {self.zone}, skipping zone: {e}")
            result.skipped = True
            return result

        self._sync(desired, actual, result)
        if self.dns_config.purge_unknown:
            self.purge_unknown_records(desired, result)
        return result

    # -------------------------------------------------------------------------
    # Sync
    # -------------------------------------------------------------------------

    def _target(self, domain: DomainRecord, record_type: RecordType) -> Optional[Record]:
        value = domain.value_for(record_type)
        if not value and self.ip_lookup is not None:
            value = self.ip_lookup.get(record_type)
        if not value:
            return None
        return Record(
            name=domain.name,
            type=record_type,
            value=value,
            ttl=domain.ttl if domain.ttl is not None else self.dns_config.default_ttl,
            proxied=domain.proxied,
        )

    def _delete(self, record: Record, result: ReconcileResult, reason: str) -> None:
        try:
            self.provider.delete(record)
        except ProviderError as e:
            result.failed += 1
            self.log.error(f"Failed to delete {reason} record {record} in zone {self.zone}: {e}")
            return
        result.deleted += 1
        self.log.info(f"Deleted {reason} record {record} in zone {self.zone}")

    def _consolidate(
        self, existing: List[Record], target: Record, result: ReconcileResult
    ) -> Optional[Record]:
        """Keep at most one record per (name, type), deleting the duplicates."""
        if not existing:
            return None
        keep = next((r for r in existing if r.matches(target)), existing[0])
        duplicates = [r for r in existing if r is not keep]
        if duplicates:
            self.log.warning(
                f"Found {len(existing)} duplicate {target.type.value} records for "
                f"{target.name}, consolidating"
            )
        for record in duplicates:
            self._delete(record, result, "duplicate")
        return keep

    def _sync(
        self, desired: List[DomainRecord], actual: List[Record], result: ReconcileResult
    ) -> None:
        records_by_key: Dict[Tuple[str, RecordType], List[Record]] = {}
        for record in actual:
            records_by_key.setdefault(record.key, []).append(record)

        for domain in desired:
            for record_type in self.dns_config.enabled_types():
                target = self._target(domain, record_type)
                if target is None:
                    self.log.warning(
                        f"No {record_type.value} value for {domain.name}, skipping record"
                    )
                    continue

                current = self._consolidate(records_by_key.get(target.key, []), target, result)
                if current is not None and current.matches(target):
                    self.log.debug(f"Record {target} is up to date")
                    continue

                if current is not None:
                    target = replace(target, id=current.id)
                try:
                    self.provider.upsert(target)
                except ProviderError as e:
                    result.failed += 1
                    self.log.error(f"Failed to upsert record {target} in zone {self.zone}: {e}")
                    continue

                if current is None:
                    result.created += 1
                    self.log.info(f"Created record {target} in zone {self.zone}")
                else:
                    result.updated += 1
                    self.log.info(
                        f"Updated record {target} in zone {self.zone} (was {current.value})"
                    )

    # -------------------------------------------------------------------------
    # Purge
    # -------------------------------------------------------------------------

    def purge_unknown_records(self, desired: List[DomainRecord], result: ReconcileResult) -> None:
        """Delete records no desired domain accounts for.

        Purging never runs on unreliable data: if the provider cannot list the
        zone, nothing is deleted.
        """
        try:
            existing = self._list()
        except ProviderError as e:
            self.log.error(f"Failed to fetch existing records, skipping purge for zone {self.zone}: {e}")
            result.purge_aborted = True
            return

        for record in existing:
            if not contains_record(desired, record, self.dns_config):
                self._delete(record, result, "unknown")
