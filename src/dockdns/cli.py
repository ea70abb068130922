#!/usr/bin/env python3
"""dockdns - DNS record synchronization for Docker hosts

Keeps A/AAAA records at one or more DNS providers in sync with the domains
declared in the configuration file and in Docker container labels.

Supported DNS Providers:
    - cloudflare: Cloudflare DNS (apiToken, zoneID)
    - adguard: AdGuard Home DNS rewrites (url, username, password)

Usage:
    dockdns --config /config/config.yaml
    dockdns --config /config/config.yaml --once

See dockdns.config for the configuration file format.
"""

from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
import threading
from typing import Dict, List, Optional

from dockdns import __version__
from dockdns.config import DEFAULT_CONFIG_PATH, AppConfig, load_config
from dockdns.discovery import DockerDiscovery
from dockdns.errors import ConfigError, DiscoveryUnavailable
from dockdns.log import build_logger
from dockdns.providers import create_provider
from dockdns.records import Provider
from dockdns.resolver import DesiredStateResolver, PublicIPLookup
from dockdns.runner import Runner
from dockdns.status import StatusServer

SHUTDOWN_TIMEOUT_SECONDS = 5.0


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="dockdns", description="Keep DNS records in sync with Docker labels"
    )
    parser.add_argument(
        "-c",
        "--config",
        default=os.getenv("DOCKDNS_CONFIG", DEFAULT_CONFIG_PATH),
        help="Path to the configuration file (default: %(default)s)",
    )
    parser.add_argument(
        "--once", action="store_true", help="Run a single reconciliation pass and exit"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def build_providers(app_config: AppConfig, log: logging.Logger) -> Dict[str, Provider]:
    """Create one provider per zone. Raises ProviderConfigError on failure."""
    providers: Dict[str, Provider] = {}
    for zone in app_config.zones:
        providers[zone.name] = create_provider(zone, log)
        log.info(f"Zone {zone.name}: using DNS provider {providers[zone.name].name}")
    return providers


def build_discovery(app_config: AppConfig, log: logging.Logger) -> Optional[DockerDiscovery]:
    if not app_config.docker.enabled:
        log.info("Docker discovery disabled, using static configuration only")
        return None
    try:
        return DockerDiscovery.from_env(app_config.docker.label_prefix, log=log)
    except DiscoveryUnavailable as e:
        log.warning(f"Ignoring dynamic configuration: {e}")
        return None


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point."""
    args = parse_args(argv)

    try:
        app_config = load_config(args.config)
    except ConfigError as e:
        build_logger().error(f"Failed to read config {args.config}: {e}")
        sys.exit(1)

    log = build_logger(app_config.log.level, app_config.log.format)
    log.debug(f"Successfully read config from {args.config}: {app_config}")

    try:
        providers = build_providers(app_config, log)
    except ConfigError as e:
        log.error(f"Failed to create DNS provider: {e}")
        sys.exit(1)

    resolver = DesiredStateResolver(
        app_config.domains,
        [zone.name for zone in app_config.zones],
        discovery=build_discovery(app_config, log),
        log=log,
    )
    runner = Runner(
        providers=providers,
        resolver=resolver,
        dns_config=app_config.dns,
        interval=app_config.interval,
        log=log,
        ip_lookup=PublicIPLookup(log=log),
    )

    if args.once:
        runner.run_once()
        return

    stop_event = threading.Event()

    def handle_signal(signum, frame) -> None:
        log.info(f"Received shutdown signal ({signal.Signals(signum).name}), shutting down workers")
        stop_event.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    status_server: Optional[StatusServer] = None
    if app_config.status.enabled:
        try:
            status_server = StatusServer(
                app_config.status.host,
                app_config.status.port,
                app_config.zones,
                app_config.domains,
                log,
            )
        except OSError as e:
            log.error(f"Failed to start status server: {e}")
            sys.exit(1)
        status_server.start()

    updater = threading.Thread(target=runner.run, args=(stop_event,), name="dns-updater", daemon=True)
    updater.start()

    # wait for a termination signal
    while not stop_event.wait(1.0):
        pass

    if status_server is not None:
        status_server.stop(SHUTDOWN_TIMEOUT_SECONDS)

    updater.join(SHUTDOWN_TIMEOUT_SECONDS)
    if updater.is_alive():
        log.warning(
            f"DNS update still running after {SHUTDOWN_TIMEOUT_SECONDS} seconds, abandoning it"
        )

    log.info("Stopped all workers, bye")


if __name__ == "__main__":
    main()
