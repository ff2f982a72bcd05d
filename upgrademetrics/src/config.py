from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

DEFAULT_PROMETHEUS_NAMESPACE = "openshift-monitoring"
DEFAULT_PROMETHEUS_ROUTE_NAME = "prometheus-k8s"
DEFAULT_PROMETHEUS_SERVICE_ACCOUNT = "prometheus-k8s"
DEFAULT_TOKEN_SECRET_PREFIX = "prometheus-k8s-token"
DEFAULT_TLS_HANDSHAKE_TIMEOUT_SECONDS = 5


class ConfigError(ValueError):
    """Raised when the adapter configuration is invalid."""


@dataclass(frozen=True)
class AdapterConfig:
    """Immutable adapter configuration loaded at startup.

    Attributes:
        namespace: Namespace holding the Prometheus route, service account and token secret.
        route_name: Name of the route whose ``spec.host`` is the query endpoint.
        service_account_name: Service account whose token secret authenticates queries.
        token_secret_prefix: Name prefix identifying the token secret among the
            service account's secret references.
        tls_handshake_timeout_seconds: Upper bound on connection setup, TLS handshake included.
        query_timeout_seconds: Read deadline per query. ``None`` keeps the
            historical behaviour of waiting indefinitely for a response.
    """

    namespace: str = DEFAULT_PROMETHEUS_NAMESPACE
    route_name: str = DEFAULT_PROMETHEUS_ROUTE_NAME
    service_account_name: str = DEFAULT_PROMETHEUS_SERVICE_ACCOUNT
    token_secret_prefix: str = DEFAULT_TOKEN_SECRET_PREFIX
    tls_handshake_timeout_seconds: float = DEFAULT_TLS_HANDSHAKE_TIMEOUT_SECONDS
    query_timeout_seconds: float | None = None


def env_int(
    values: Mapping[str, str],
    name: str,
    default: int | None,
    *,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int | None:
    raw = values.get(name)
    if raw is None or not raw.strip():
        value = default
    else:
        try:
            value = int(raw)
        except ValueError as exc:
            raise ConfigError(f"{name} must be an integer") from exc

    if value is None:
        return None
    if minimum is not None and value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got: {value}")
    if maximum is not None and value > maximum:
        raise ConfigError(f"{name} must be <= {maximum}, got: {value}")
    return value


def _env_name(values: Mapping[str, str], name: str, default: str) -> str:
    value = values.get(name, default)
    if not value.strip():
        raise ConfigError(f"{name} must be a non-empty string")
    return value.strip()


def load_config(env: Mapping[str, str] | None = None) -> AdapterConfig:
    """Load adapter config from the environment.

    Environment variables (with defaults):
        ``PROMETHEUS_NAMESPACE``  (``openshift-monitoring``)
        ``PROMETHEUS_ROUTE_NAME`` (``prometheus-k8s``)
        ``PROMETHEUS_SERVICE_ACCOUNT`` (``prometheus-k8s``)
        ``PROMETHEUS_TOKEN_SECRET_PREFIX`` (``prometheus-k8s-token``)
        ``PROMETHEUS_TLS_HANDSHAKE_TIMEOUT_SECONDS`` (``5``)
        ``PROMETHEUS_QUERY_TIMEOUT_SECONDS`` (unset: no read deadline)
    """
    values = env if env is not None else os.environ

    handshake_timeout = env_int(
        values,
        "PROMETHEUS_TLS_HANDSHAKE_TIMEOUT_SECONDS",
        DEFAULT_TLS_HANDSHAKE_TIMEOUT_SECONDS,
        minimum=1,
    )
    query_timeout = env_int(values, "PROMETHEUS_QUERY_TIMEOUT_SECONDS", None, minimum=1)

    return AdapterConfig(
        namespace=_env_name(values, "PROMETHEUS_NAMESPACE", DEFAULT_PROMETHEUS_NAMESPACE),
        route_name=_env_name(values, "PROMETHEUS_ROUTE_NAME", DEFAULT_PROMETHEUS_ROUTE_NAME),
        service_account_name=_env_name(
            values, "PROMETHEUS_SERVICE_ACCOUNT", DEFAULT_PROMETHEUS_SERVICE_ACCOUNT
        ),
        token_secret_prefix=_env_name(
            values, "PROMETHEUS_TOKEN_SECRET_PREFIX", DEFAULT_TOKEN_SECRET_PREFIX
        ),
        tls_handshake_timeout_seconds=float(
            handshake_timeout or DEFAULT_TLS_HANDSHAKE_TIMEOUT_SECONDS
        ),
        query_timeout_seconds=float(query_timeout) if query_timeout is not None else None,
    )
