from __future__ import annotations

import logging
from collections.abc import Sequence

from kubernetes.client import CoreV1Api, CustomObjectsApi
from prometheus_client import CollectorRegistry

from upgrademetrics.src.config import AdapterConfig, load_config
from upgrademetrics.src.kube import (
    Credential,
    CredentialSource,
    KubeCredentialSource,
    discover_credential,
)
from upgrademetrics.src.metrics import GaugeRecorder, UpgradeGauges
from upgrademetrics.src.query import AlertResponse, QueryEngine
from upgrademetrics.src.transport import PrometheusTransport

LOGGER = logging.getLogger(__name__)


class UpgradeMetricsClient(GaugeRecorder):
    """Single entry point for upgrade gauges and Prometheus-backed checks.

    Gauge updates never fail. Query methods raise a :class:`QueryError`
    subclass instead of guessing a boolean when Prometheus cannot be read.
    """

    def __init__(self, gauges: UpgradeGauges, engine: QueryEngine) -> None:
        super().__init__(gauges)
        self.engine = engine

    def query(self, promql: str) -> AlertResponse:
        return self.engine.query(promql)

    def is_alert_firing(
        self,
        alert_name: str,
        included_namespaces: Sequence[str],
        excluded_namespaces: Sequence[str],
    ) -> bool:
        return self.engine.is_alert_firing(alert_name, included_namespaces, excluded_namespaces)

    def is_metric_notification_event_sent_set(
        self, upgradeconfig_name: str, event: str, version: str
    ) -> bool:
        return self.engine.is_metric_notification_event_sent_set(upgradeconfig_name, event, version)

    def is_cluster_version_at_version(self, version: str) -> bool:
        return self.engine.is_cluster_version_at_version(version)

    def close(self) -> None:
        close = getattr(self.engine.transport, "close", None)
        if callable(close):
            close()


class MetricsBuilder:
    """Builds :class:`UpgradeMetricsClient` instances sharing one gauge set.

    Credentials are discovered once per :meth:`new_client` call and never
    refreshed; build a new client to pick up a rotated token.
    """

    def __init__(self, gauges: UpgradeGauges, config: AdapterConfig | None = None) -> None:
        self.gauges = gauges
        self.config = config or AdapterConfig()

    def new_transport(self, credential: Credential) -> PrometheusTransport:
        return PrometheusTransport(
            token=credential.token,
            tls_handshake_timeout=self.config.tls_handshake_timeout_seconds,
            request_timeout=self.config.query_timeout_seconds,
        )

    def new_client(self, source: CredentialSource) -> UpgradeMetricsClient:
        credential = discover_credential(source)
        LOGGER.debug(
            "Prometheus transport: handshake timeout %ss, query timeout %s",
            self.config.tls_handshake_timeout_seconds,
            self.config.query_timeout_seconds or "unbounded",
        )
        engine = QueryEngine(host=credential.host, transport=self.new_transport(credential))
        return UpgradeMetricsClient(self.gauges, engine)

    def credential_source(
        self, core_api: CoreV1Api, custom_objects_api: CustomObjectsApi
    ) -> KubeCredentialSource:
        return KubeCredentialSource(
            core_api=core_api,
            custom_objects_api=custom_objects_api,
            namespace=self.config.namespace,
            route_name=self.config.route_name,
            service_account_name=self.config.service_account_name,
            token_secret_prefix=self.config.token_secret_prefix,
        )


def build_metrics_client_from_env(
    core_api: CoreV1Api,
    custom_objects_api: CustomObjectsApi,
    registry: CollectorRegistry,
) -> UpgradeMetricsClient:
    """Register the upgrade gauges into ``registry`` and build a client from env config.

    Raises :class:`RegistrationError` if ``registry`` already holds the gauges,
    :class:`ConfigError` for invalid settings and :class:`DiscoveryError` when
    the Prometheus route or token cannot be read.
    """
    config = load_config()
    builder = MetricsBuilder(UpgradeGauges(registry), config)
    return builder.new_client(builder.credential_source(core_api, custom_objects_api))
