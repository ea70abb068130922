"""Exception hierarchy for dockdns.

Configuration and provider construction errors are fatal at startup. The
remaining errors are raised at runtime and handled per record, per zone or
per pass by the reconciler and runner.
"""


class DockDNSError(Exception):
    """Root exception for all dockdns errors."""


class ConfigError(DockDNSError):
    """Invalid or missing configuration."""


class ProviderConfigError(ConfigError):
    """A DNS provider could not be constructed from its zone configuration."""


class ProviderError(DockDNSError):
    """A DNS provider backend call failed."""


class DiscoveryUnavailable(DockDNSError):
    """The container discovery source cannot be reached."""
