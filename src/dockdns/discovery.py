"""Docker label discovery.

Running containers declare the domains they want through labels::

    labels:
      - "dockdns.name=app.example.com,www.example.com"
      - "dockdns.a=10.0.0.5"          # optional, defaults to the public IPv4
      - "dockdns.aaaa=fd00::5"        # optional, defaults to the public IPv6
      - "dockdns.ttl=120"             # optional
      - "dockdns.proxied=true"        # optional, Cloudflare only

Discovered records live for exactly one reconciliation pass.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional

import docker
import requests

from dockdns.config import parse_domain
from dockdns.errors import ConfigError, DiscoveryUnavailable
from dockdns.records import DomainRecord, Source

logger = logging.getLogger(__name__)


class DockerDiscovery:
    """Reads desired domain records from container labels."""

    def __init__(
        self,
        client: Any,
        label_prefix: str = "dockdns",
        log: Optional[logging.Logger] = None,
    ):
        self._client = client
        self._prefix = label_prefix
        self._log = log or logger

    @classmethod
    def from_env(
        cls, label_prefix: str = "dockdns", log: Optional[logging.Logger] = None
    ) -> "DockerDiscovery":
        """Connect using DOCKER_HOST and friends, like the docker CLI does."""
        try:
            client = docker.from_env()
        except docker.errors.DockerException as e:
            raise DiscoveryUnavailable(f"Could not create docker client: {e}") from e
        return cls(client, label_prefix=label_prefix, log=log)

    @property
    def name(self) -> str:
        return "Docker"

    def discover(self) -> List[DomainRecord]:
        try:
            containers = self._client.containers.list()
        except (docker.errors.DockerException, requests.exceptions.RequestException) as e:
            raise DiscoveryUnavailable(f"Failed to list containers: {e}") from e

        domains: List[DomainRecord] = []
        for container in containers:
            domains.extend(self._domains_for(container))
        return domains

    def _label(self, labels: dict, key: str) -> Optional[str]:
        value = labels.get(f"{self._prefix}.{key}")
        return value.strip() if isinstance(value, str) and value.strip() else None

    def _domains_for(self, container: Any) -> List[DomainRecord]:
        labels = container.labels or {}
        names = self._label(labels, "name")
        if not names:
            return []

        ttl = self._label(labels, "ttl")
        if ttl is not None and not ttl.isdigit():
            self._log.warning(
                f"Container '{container.name}' has invalid {self._prefix}.ttl '{ttl}', ignoring it"
            )
            ttl = None

        domains: List[DomainRecord] = []
        for name in names.split(","):
            if not name.strip():
                continue
            try:
                domains.append(
                    parse_domain(
                        {
                            "name": name,
                            "a": self._label(labels, "a"),
                            "aaaa": self._label(labels, "aaaa"),
                            "ttl": ttl,
                            "proxied": self._label(labels, "proxied"),
                        },
                        source=Source.DISCOVERED,
                    )
                )
            except ConfigError as e:
                self._log.warning(f"Container '{container.name}' has invalid labels: {e}")
        if domains:
            self._log.debug(
                f"Container '{container.name}': {', '.join(d.name for d in domains)}"
            )
        return domains
