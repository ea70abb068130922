"""dockdns - keep DNS records in sync with configuration and Docker labels."""

__version__ = "0.4.0"
