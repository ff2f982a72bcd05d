from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

import requests

from upgrademetrics.src.errors import DecodeError
from upgrademetrics.src.metrics import EVENT_LABEL, METRICS_TAG, NAME_LABEL, VERSION_LABEL

LOGGER = logging.getLogger(__name__)

QUERY_PATH = "/api/v1/query"


class QueryTransport(Protocol):
    def get(self, url: str, params: Mapping[str, Any] | None = None) -> requests.Response: ...


@dataclass(frozen=True)
class AlertResult:
    """One matching series. ``value`` is carried through but never interpreted."""

    metric: dict[str, str] = field(default_factory=dict)
    value: tuple[Any, ...] = ()


@dataclass(frozen=True)
class AlertResponse:
    status: str
    result: tuple[AlertResult, ...] = ()

    @property
    def has_results(self) -> bool:
        return len(self.result) > 0

    @classmethod
    def from_dict(cls, payload: Any) -> AlertResponse:
        """Decode a ``/api/v1/query`` JSON document.

        Missing ``data`` or ``result`` keys decode as an empty result, which is
        how Prometheus error documents look. Anything that is not the expected
        shape raises :class:`DecodeError`.
        """
        if not isinstance(payload, dict):
            raise DecodeError(f"Expected a JSON object, got {type(payload).__name__}")

        data = payload.get("data")
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise DecodeError("Field 'data' must be an object")
        raw_results = data.get("result")
        if raw_results is None:
            raw_results = []
        if not isinstance(raw_results, list):
            raise DecodeError("Field 'data.result' must be a list")

        results: list[AlertResult] = []
        for entry in raw_results:
            if not isinstance(entry, dict):
                raise DecodeError("Entries of 'data.result' must be objects")
            metric = entry.get("metric", {})
            value = entry.get("value", [])
            if not isinstance(metric, dict) or not isinstance(value, list):
                raise DecodeError("Result entry has a malformed 'metric' or 'value'")
            results.append(
                AlertResult(
                    metric={str(k): str(v) for k, v in metric.items()},
                    value=tuple(value),
                )
            )

        return cls(status=str(payload.get("status", "")), result=tuple(results))

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "data": {
                "result": [
                    {"metric": dict(item.metric), "value": list(item.value)}
                    for item in self.result
                ]
            },
        }


def alert_firing_query(
    alert_name: str, included_namespaces: Sequence[str], excluded_namespaces: Sequence[str]
) -> str:
    """Build the ``ALERTS`` selector for a firing alert.

    ``namespace=~`` accepts the empty namespace plus every included one.
    ``namespace!=`` compares against the ``|``-joined exclusions as one
    literal string, so it only excludes anything when at most one namespace
    is given.
    """
    if len(excluded_namespaces) > 1:
        LOGGER.warning(
            "Alert %s: namespace exclusion is a literal match on %r and will not exclude "
            "any of the %d namespaces individually",
            alert_name,
            "|".join(excluded_namespaces),
            len(excluded_namespaces),
        )
    return (
        f'ALERTS{{alertstate="firing",alertname="{alert_name}",'
        f'namespace=~"^$|{"|".join(included_namespaces)}",'
        f'namespace!="{"|".join(excluded_namespaces)}"}}'
    )


def notification_sent_query(upgradeconfig_name: str, event: str, version: str) -> str:
    return (
        f"{METRICS_TAG}_upgrade_notification{{"
        f'{NAME_LABEL}="{upgradeconfig_name}",'
        f'{EVENT_LABEL}="{event}",'
        f'{VERSION_LABEL}="{version}"}}'
    )


def cluster_version_query(version: str) -> str:
    return f'cluster_version{{version="{version}",type="current"}}'


class QueryEngine:
    """Runs instant queries against Prometheus and reduces them to booleans.

    Every call is one blocking round trip; nothing is cached or retried.
    Transport and decode failures propagate as :class:`QueryError`
    subclasses, so a boolean is only ever returned for a decoded response.
    """

    def __init__(self, host: str, transport: QueryTransport, scheme: str = "https") -> None:
        self.host = host
        self.transport = transport
        self.scheme = scheme

    @property
    def url(self) -> str:
        return f"{self.scheme}://{self.host}{QUERY_PATH}"

    def query(self, promql: str) -> AlertResponse:
        LOGGER.debug("Querying Prometheus: %s", promql)
        response = self.transport.get(self.url, params={"query": promql})
        try:
            payload = response.json()
        except ValueError as exc:
            raise DecodeError(
                f"Prometheus returned a non-JSON body (HTTP {response.status_code})"
            ) from exc

        decoded = AlertResponse.from_dict(payload)
        if decoded.status != "success":
            LOGGER.warning(
                "Prometheus query returned status %r (HTTP %s)",
                decoded.status,
                response.status_code,
            )
        return decoded

    def _has_results(self, promql: str) -> bool:
        return self.query(promql).has_results

    def is_alert_firing(
        self,
        alert_name: str,
        included_namespaces: Sequence[str],
        excluded_namespaces: Sequence[str],
    ) -> bool:
        return self._has_results(
            alert_firing_query(alert_name, included_namespaces, excluded_namespaces)
        )

    def is_metric_notification_event_sent_set(
        self, upgradeconfig_name: str, event: str, version: str
    ) -> bool:
        return self._has_results(notification_sent_query(upgradeconfig_name, event, version))

    def is_cluster_version_at_version(self, version: str) -> bool:
        return self._has_results(cluster_version_query(version))
