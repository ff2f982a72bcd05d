from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from enum import Enum

from prometheus_client import CollectorRegistry, Gauge

from upgrademetrics.src.errors import RegistrationError

LOGGER = logging.getLogger(__name__)

NAMESPACE = "upgradeoperator"
SUBSYSTEM = "upgrade"
# Prefix of every exported gauge name.
METRICS_TAG = "upgradeoperator"

NAME_LABEL = "upgradeconfig_name"
NODE_LABEL = "node_name"
EVENT_LABEL = "event"
VERSION_LABEL = "version"
STATE_LABEL = "state"


class UpgradeState(str, Enum):
    """Values of the ``state`` label set by the upgrade state machine."""

    SCHEDULED = "scheduled"
    STARTED = "started"
    FINISHED = "finished"
    CONTROL_PLANE_STARTED = "control_plane_started"
    CONTROL_PLANE_COMPLETED = "control_plane_completed"
    WORKERS_STARTED = "workers_started"
    WORKERS_COMPLETED = "workers_completed"


@dataclass(frozen=True)
class UpgradeConfigLabels:
    upgradeconfig_name: str

    def as_labels(self) -> dict[str, str]:
        return asdict(self)


@dataclass(frozen=True)
class VersionedLabels:
    upgradeconfig_name: str
    version: str

    def as_labels(self) -> dict[str, str]:
        return asdict(self)


@dataclass(frozen=True)
class NodeLabels:
    node_name: str

    def as_labels(self) -> dict[str, str]:
        return asdict(self)


@dataclass(frozen=True)
class NotificationLabels:
    upgradeconfig_name: str
    event: str
    version: str

    def as_labels(self) -> dict[str, str]:
        return asdict(self)


LabelRecord = UpgradeConfigLabels | VersionedLabels | NodeLabels | NotificationLabels

_UPGRADECONFIG_LABELS = (NAME_LABEL,)
_VERSIONED_LABELS = (NAME_LABEL, VERSION_LABEL)
_NODE_LABELS = (NODE_LABEL,)
_NOTIFICATION_LABELS = (NAME_LABEL, EVENT_LABEL, VERSION_LABEL)


def _gauge(name: str, documentation: str, labelnames: tuple[str, ...]) -> Gauge:
    # Built unregistered; UpgradeGauges registers the whole set atomically.
    return Gauge(name, documentation, labelnames, namespace=METRICS_TAG, registry=None)


class UpgradeGauges:
    """The fixed set of upgrade-step gauges, registered into one collector registry.

    Every gauge is a binary flag per label tuple: ``1`` when the step failed or
    the condition is active, ``0`` once it succeeded or was cleared. Tuples that
    were never set are absent from the exposition rather than reported as ``0``.

    The registry is passed in explicitly so a process builds it once at
    startup and hands it to both this object and whatever serves ``/metrics``.
    Registering a second ``UpgradeGauges`` into the same registry fails with
    :class:`RegistrationError` and leaves the registry as it was.
    """

    def __init__(self, registry: CollectorRegistry) -> None:
        self.registry = registry
        self.validation_failed = _gauge(
            "upgradeconfig_validation_failed",
            "Failed to validate the upgrade config",
            _UPGRADECONFIG_LABELS,
        )
        self.cluster_check_failed = _gauge(
            "cluster_check_failed",
            "Failed on the cluster check step",
            _UPGRADECONFIG_LABELS,
        )
        self.scaling_failed = _gauge(
            "scaling_failed",
            "Failed to scale up extra workers",
            _UPGRADECONFIG_LABELS,
        )
        self.cluster_verification_failed = _gauge(
            "cluster_verification_failed",
            "Failed on the cluster upgrade verification step",
            _UPGRADECONFIG_LABELS,
        )
        self.upgrade_window_breached = _gauge(
            "upgrade_window_breached",
            "Failed to commence upgrade during the upgrade window",
            _UPGRADECONFIG_LABELS,
        )
        self.upgradeconfig_synced = _gauge(
            "upgradeconfig_synced",
            "UpgradeConfig has not been synced in time",
            _UPGRADECONFIG_LABELS,
        )
        self.controlplane_timeout = _gauge(
            "controlplane_timeout",
            "Control plane upgrade timeout",
            _VERSIONED_LABELS,
        )
        self.worker_timeout = _gauge(
            "worker_timeout",
            "Worker nodes upgrade timeout",
            _VERSIONED_LABELS,
        )
        self.node_drain_failed = _gauge(
            "node_drain_timeout",
            "Node cannot be drained successfully in time.",
            _NODE_LABELS,
        )
        self.upgrade_notification = _gauge(
            "upgrade_notification",
            "Notification event raised",
            _NOTIFICATION_LABELS,
        )
        self._register()

    def all(self) -> tuple[Gauge, ...]:
        return (
            self.validation_failed,
            self.cluster_check_failed,
            self.scaling_failed,
            self.cluster_verification_failed,
            self.upgrade_window_breached,
            self.upgradeconfig_synced,
            self.controlplane_timeout,
            self.worker_timeout,
            self.node_drain_failed,
            self.upgrade_notification,
        )

    def _register(self) -> None:
        registered: list[Gauge] = []
        try:
            for gauge in self.all():
                self.registry.register(gauge)
                registered.append(gauge)
        except ValueError as exc:
            for gauge in registered:
                self.registry.unregister(gauge)
            raise RegistrationError(f"Unable to register upgrade gauges: {exc}") from exc
        LOGGER.debug("Registered %d upgrade gauges", len(registered))

    def sample_value(self, gauge: Gauge, labels: LabelRecord) -> float | None:
        """Return the current value of one label tuple, or ``None`` if it was never set."""
        return self.registry.get_sample_value(gauge.describe()[0].name, labels.as_labels())


class GaugeRecorder:
    """Update and reset operations over :class:`UpgradeGauges`.

    None of these calls perform I/O or raise; concurrent callers rely on the
    locking inside ``prometheus_client``.
    """

    def __init__(self, gauges: UpgradeGauges) -> None:
        self.gauges = gauges

    @staticmethod
    def _set(gauge: Gauge, labels: LabelRecord, value: float) -> None:
        gauge.labels(**labels.as_labels()).set(value)

    def update_metric_validation_failed(self, upgradeconfig_name: str) -> None:
        self._set(self.gauges.validation_failed, UpgradeConfigLabels(upgradeconfig_name), 1)

    def update_metric_validation_succeeded(self, upgradeconfig_name: str) -> None:
        self._set(self.gauges.validation_failed, UpgradeConfigLabels(upgradeconfig_name), 0)

    def update_metric_cluster_check_failed(self, upgradeconfig_name: str) -> None:
        self._set(self.gauges.cluster_check_failed, UpgradeConfigLabels(upgradeconfig_name), 1)

    def update_metric_cluster_check_succeeded(self, upgradeconfig_name: str) -> None:
        self._set(self.gauges.cluster_check_failed, UpgradeConfigLabels(upgradeconfig_name), 0)

    def reset_metric_cluster_check(self, upgradeconfig_name: str) -> None:
        self._set(self.gauges.cluster_check_failed, UpgradeConfigLabels(upgradeconfig_name), 0)

    def update_metric_scaling_failed(self, upgradeconfig_name: str) -> None:
        self._set(self.gauges.scaling_failed, UpgradeConfigLabels(upgradeconfig_name), 1)

    def update_metric_scaling_succeeded(self, upgradeconfig_name: str) -> None:
        self._set(self.gauges.scaling_failed, UpgradeConfigLabels(upgradeconfig_name), 0)

    def reset_metric_scaling(self, upgradeconfig_name: str) -> None:
        self._set(self.gauges.scaling_failed, UpgradeConfigLabels(upgradeconfig_name), 0)

    def update_metric_cluster_verification_failed(self, upgradeconfig_name: str) -> None:
        self._set(
            self.gauges.cluster_verification_failed, UpgradeConfigLabels(upgradeconfig_name), 1
        )

    def update_metric_cluster_verification_succeeded(self, upgradeconfig_name: str) -> None:
        self._set(
            self.gauges.cluster_verification_failed, UpgradeConfigLabels(upgradeconfig_name), 0
        )

    def update_metric_upgrade_window_breached(self, upgradeconfig_name: str) -> None:
        self._set(self.gauges.upgrade_window_breached, UpgradeConfigLabels(upgradeconfig_name), 1)

    def update_metric_upgrade_window_not_breached(self, upgradeconfig_name: str) -> None:
        self._set(self.gauges.upgrade_window_breached, UpgradeConfigLabels(upgradeconfig_name), 0)

    def update_metric_upgrade_config_synced(self, upgradeconfig_name: str) -> None:
        self._set(self.gauges.upgradeconfig_synced, UpgradeConfigLabels(upgradeconfig_name), 1)

    def reset_metric_upgrade_config_synced(self, upgradeconfig_name: str) -> None:
        self._set(self.gauges.upgradeconfig_synced, UpgradeConfigLabels(upgradeconfig_name), 0)

    def update_metric_upgrade_control_plane_timeout(
        self, upgradeconfig_name: str, version: str
    ) -> None:
        self._set(self.gauges.controlplane_timeout, VersionedLabels(upgradeconfig_name, version), 1)

    def reset_metric_upgrade_control_plane_timeout(
        self, upgradeconfig_name: str, version: str
    ) -> None:
        self._set(self.gauges.controlplane_timeout, VersionedLabels(upgradeconfig_name, version), 0)

    def update_metric_upgrade_worker_timeout(self, upgradeconfig_name: str, version: str) -> None:
        self._set(self.gauges.worker_timeout, VersionedLabels(upgradeconfig_name, version), 1)

    def reset_metric_upgrade_worker_timeout(self, upgradeconfig_name: str, version: str) -> None:
        self._set(self.gauges.worker_timeout, VersionedLabels(upgradeconfig_name, version), 0)

    def update_metric_node_drain_failed(self, node_name: str) -> None:
        self._set(self.gauges.node_drain_failed, NodeLabels(node_name), 1)

    def reset_metric_node_drain_failed(self, node_name: str) -> None:
        self._set(self.gauges.node_drain_failed, NodeLabels(node_name), 0)

    def update_metric_notification_event_sent(
        self, upgradeconfig_name: str, event: str, version: str
    ) -> None:
        self._set(
            self.gauges.upgrade_notification,
            NotificationLabels(upgradeconfig_name, event, version),
            1,
        )

    def reset_metrics(self) -> None:
        """Drop every observed label tuple of every upgrade gauge."""
        for gauge in self.gauges.all():
            gauge.clear()

    def reset_all_metric_node_drain_failed(self) -> None:
        """Drop every node-drain tuple, leaving the other gauges untouched."""
        self.gauges.node_drain_failed.clear()
