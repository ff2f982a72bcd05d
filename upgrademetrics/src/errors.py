from __future__ import annotations


class UpgradeMetricsError(Exception):
    """Base class for every error raised by the upgrade metrics adapter."""


class RegistrationError(UpgradeMetricsError):
    """Raised when the gauge set cannot be registered into a collector registry."""


class DiscoveryError(UpgradeMetricsError):
    """Raised when the Prometheus host or token cannot be read from the cluster."""


class HostNotFoundError(DiscoveryError):
    """Raised when the Prometheus route does not exist."""


class TokenNotFoundError(DiscoveryError):
    """Raised when the service account references no token secret."""


class QueryError(UpgradeMetricsError):
    """Raised when a Prometheus query cannot produce a decoded response."""


class TransportError(QueryError):
    """Raised on network, TLS or timeout failures while querying Prometheus."""


class DecodeError(QueryError):
    """Raised when the Prometheus response body is not a valid query result."""
