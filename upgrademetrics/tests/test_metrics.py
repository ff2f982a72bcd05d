from __future__ import annotations

import threading

import pytest
from prometheus_client import CollectorRegistry, generate_latest

from upgrademetrics.src.errors import RegistrationError
from upgrademetrics.src.metrics import (
    GaugeRecorder,
    NodeLabels,
    NotificationLabels,
    UpgradeConfigLabels,
    UpgradeGauges,
    UpgradeState,
    VersionedLabels,
)


@pytest.fixture
def registry() -> CollectorRegistry:
    return CollectorRegistry()


@pytest.fixture
def gauges(registry: CollectorRegistry) -> UpgradeGauges:
    return UpgradeGauges(registry)


@pytest.fixture
def recorder(gauges: UpgradeGauges) -> GaugeRecorder:
    return GaugeRecorder(gauges)


def _value(registry: CollectorRegistry, name: str, **labels: str) -> float | None:
    return registry.get_sample_value(f"upgradeoperator_{name}", labels)


class TestRegistration:
    def test_registers_every_gauge_with_the_operator_prefix(
        self, registry: CollectorRegistry, gauges: UpgradeGauges
    ) -> None:
        names = {metric.name for metric in registry.collect()}

        assert names == {
            "upgradeoperator_upgradeconfig_validation_failed",
            "upgradeoperator_cluster_check_failed",
            "upgradeoperator_scaling_failed",
            "upgradeoperator_cluster_verification_failed",
            "upgradeoperator_upgrade_window_breached",
            "upgradeoperator_upgradeconfig_synced",
            "upgradeoperator_controlplane_timeout",
            "upgradeoperator_worker_timeout",
            "upgradeoperator_node_drain_timeout",
            "upgradeoperator_upgrade_notification",
        }

    def test_label_schemas_are_fixed(self, gauges: UpgradeGauges) -> None:
        assert gauges.validation_failed._labelnames == ("upgradeconfig_name",)
        assert gauges.controlplane_timeout._labelnames == ("upgradeconfig_name", "version")
        assert gauges.worker_timeout._labelnames == ("upgradeconfig_name", "version")
        assert gauges.node_drain_failed._labelnames == ("node_name",)
        assert gauges.upgrade_notification._labelnames == (
            "upgradeconfig_name",
            "event",
            "version",
        )

    def test_second_registration_raises_and_leaves_registry_intact(
        self, registry: CollectorRegistry, gauges: UpgradeGauges
    ) -> None:
        before = generate_latest(registry)

        with pytest.raises(RegistrationError):
            UpgradeGauges(registry)

        assert generate_latest(registry) == before
        GaugeRecorder(gauges).update_metric_scaling_failed("uc1")
        assert _value(registry, "scaling_failed", upgradeconfig_name="uc1") == 1.0

    def test_separate_registries_do_not_conflict(self) -> None:
        first = UpgradeGauges(CollectorRegistry())
        second = UpgradeGauges(CollectorRegistry())

        GaugeRecorder(first).update_metric_validation_failed("uc1")

        assert first.sample_value(first.validation_failed, UpgradeConfigLabels("uc1")) == 1.0
        assert second.sample_value(second.validation_failed, UpgradeConfigLabels("uc1")) is None


class TestUpdates:
    def test_unset_tuple_is_absent(
        self, registry: CollectorRegistry, gauges: UpgradeGauges
    ) -> None:
        assert _value(registry, "upgradeconfig_validation_failed", upgradeconfig_name="uc1") is None
        assert b"upgradeconfig_validation_failed{" not in generate_latest(registry)

    def test_validation_failed_then_succeeded(
        self, registry: CollectorRegistry, recorder: GaugeRecorder
    ) -> None:
        recorder.update_metric_validation_failed("uc1")
        assert _value(registry, "upgradeconfig_validation_failed", upgradeconfig_name="uc1") == 1.0

        recorder.update_metric_validation_succeeded("uc1")
        assert _value(registry, "upgradeconfig_validation_failed", upgradeconfig_name="uc1") == 0.0

    @pytest.mark.parametrize(
        ("failed", "succeeded", "name"),
        [
            (
                "update_metric_validation_failed",
                "update_metric_validation_succeeded",
                "upgradeconfig_validation_failed",
            ),
            (
                "update_metric_cluster_check_failed",
                "update_metric_cluster_check_succeeded",
                "cluster_check_failed",
            ),
            ("update_metric_scaling_failed", "update_metric_scaling_succeeded", "scaling_failed"),
            (
                "update_metric_cluster_verification_failed",
                "update_metric_cluster_verification_succeeded",
                "cluster_verification_failed",
            ),
            (
                "update_metric_upgrade_window_breached",
                "update_metric_upgrade_window_not_breached",
                "upgrade_window_breached",
            ),
            (
                "update_metric_upgrade_config_synced",
                "reset_metric_upgrade_config_synced",
                "upgradeconfig_synced",
            ),
            (
                "update_metric_cluster_check_failed",
                "reset_metric_cluster_check",
                "cluster_check_failed",
            ),
            ("update_metric_scaling_failed", "reset_metric_scaling", "scaling_failed"),
        ],
    )
    def test_failed_then_succeeded_ends_at_zero(
        self,
        registry: CollectorRegistry,
        recorder: GaugeRecorder,
        failed: str,
        succeeded: str,
        name: str,
    ) -> None:
        for _ in range(3):
            getattr(recorder, failed)("uc1")
            getattr(recorder, succeeded)("uc1")

        assert _value(registry, name, upgradeconfig_name="uc1") == 0.0

    def test_updates_only_touch_the_named_tuple(
        self, registry: CollectorRegistry, recorder: GaugeRecorder
    ) -> None:
        recorder.update_metric_cluster_check_failed("uc1")
        recorder.update_metric_cluster_check_failed("uc2")
        recorder.update_metric_cluster_check_succeeded("uc1")

        assert _value(registry, "cluster_check_failed", upgradeconfig_name="uc1") == 0.0
        assert _value(registry, "cluster_check_failed", upgradeconfig_name="uc2") == 1.0

    def test_versioned_timeouts(self, registry: CollectorRegistry, recorder: GaugeRecorder) -> None:
        recorder.update_metric_upgrade_control_plane_timeout("uc1", "4.10.3")
        recorder.update_metric_upgrade_worker_timeout("uc1", "4.10.3")
        recorder.reset_metric_upgrade_worker_timeout("uc1", "4.10.3")

        assert (
            _value(registry, "controlplane_timeout", upgradeconfig_name="uc1", version="4.10.3")
            == 1.0
        )
        assert (
            _value(registry, "worker_timeout", upgradeconfig_name="uc1", version="4.10.3") == 0.0
        )
        assert (
            _value(registry, "controlplane_timeout", upgradeconfig_name="uc1", version="4.10.4")
            is None
        )

        recorder.reset_metric_upgrade_control_plane_timeout("uc1", "4.10.3")
        assert (
            _value(registry, "controlplane_timeout", upgradeconfig_name="uc1", version="4.10.3")
            == 0.0
        )

    def test_node_drain_and_notification(
        self, gauges: UpgradeGauges, recorder: GaugeRecorder
    ) -> None:
        recorder.update_metric_node_drain_failed("worker-0")
        recorder.reset_metric_node_drain_failed("worker-1")
        recorder.update_metric_notification_event_sent("uc1", UpgradeState.STARTED.value, "4.10.3")

        assert gauges.sample_value(gauges.node_drain_failed, NodeLabels("worker-0")) == 1.0
        assert gauges.sample_value(gauges.node_drain_failed, NodeLabels("worker-1")) == 0.0
        assert (
            gauges.sample_value(
                gauges.upgrade_notification, NotificationLabels("uc1", "started", "4.10.3")
            )
            == 1.0
        )

    def test_concurrent_updates_keep_every_tuple(
        self, gauges: UpgradeGauges, recorder: GaugeRecorder
    ) -> None:
        def _worker(index: int) -> None:
            for _ in range(50):
                recorder.update_metric_node_drain_failed(f"node-{index}")
                recorder.reset_metric_node_drain_failed(f"node-{index}")
            recorder.update_metric_node_drain_failed(f"node-{index}")

        threads = [threading.Thread(target=_worker, args=(i,)) for i in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        for index in range(8):
            assert gauges.sample_value(gauges.node_drain_failed, NodeLabels(f"node-{index}")) == 1.0


class TestResets:
    def _populate(self, recorder: GaugeRecorder) -> None:
        recorder.update_metric_validation_failed("uc1")
        recorder.update_metric_cluster_check_failed("uc1")
        recorder.update_metric_scaling_failed("uc1")
        recorder.update_metric_cluster_verification_failed("uc1")
        recorder.update_metric_upgrade_window_breached("uc1")
        recorder.update_metric_upgrade_config_synced("uc1")
        recorder.update_metric_upgrade_control_plane_timeout("uc1", "4.10.3")
        recorder.update_metric_upgrade_worker_timeout("uc1", "4.10.3")
        recorder.update_metric_node_drain_failed("worker-0")
        recorder.update_metric_notification_event_sent("uc1", "started", "4.10.3")

    def test_reset_metrics_removes_every_tuple(
        self, registry: CollectorRegistry, recorder: GaugeRecorder
    ) -> None:
        self._populate(recorder)

        recorder.reset_metrics()

        for metric in registry.collect():
            assert metric.samples == [], metric.name

    def test_reset_differs_from_setting_zero(
        self, registry: CollectorRegistry, recorder: GaugeRecorder
    ) -> None:
        recorder.update_metric_validation_failed("uc1")
        recorder.update_metric_validation_succeeded("uc1")
        assert _value(registry, "upgradeconfig_validation_failed", upgradeconfig_name="uc1") == 0.0

        recorder.reset_metrics()
        assert _value(registry, "upgradeconfig_validation_failed", upgradeconfig_name="uc1") is None

    def test_reset_all_node_drain_only_clears_node_drain(
        self, gauges: UpgradeGauges, recorder: GaugeRecorder
    ) -> None:
        self._populate(recorder)
        recorder.update_metric_node_drain_failed("worker-1")

        recorder.reset_all_metric_node_drain_failed()

        assert gauges.sample_value(gauges.node_drain_failed, NodeLabels("worker-0")) is None
        assert gauges.sample_value(gauges.node_drain_failed, NodeLabels("worker-1")) is None
        assert gauges.sample_value(gauges.validation_failed, UpgradeConfigLabels("uc1")) == 1.0
        assert (
            gauges.sample_value(gauges.controlplane_timeout, VersionedLabels("uc1", "4.10.3"))
            == 1.0
        )
        assert (
            gauges.sample_value(
                gauges.upgrade_notification, NotificationLabels("uc1", "started", "4.10.3")
            )
            == 1.0
        )

    def test_tuples_can_be_set_again_after_reset(
        self, gauges: UpgradeGauges, recorder: GaugeRecorder
    ) -> None:
        recorder.update_metric_scaling_failed("uc1")
        recorder.reset_metrics()
        recorder.update_metric_scaling_failed("uc1")

        assert gauges.sample_value(gauges.scaling_failed, UpgradeConfigLabels("uc1")) == 1.0


def test_label_records_map_to_export_names() -> None:
    assert UpgradeConfigLabels("uc1").as_labels() == {"upgradeconfig_name": "uc1"}
    assert VersionedLabels("uc1", "4.10.3").as_labels() == {
        "upgradeconfig_name": "uc1",
        "version": "4.10.3",
    }
    assert NodeLabels("worker-0").as_labels() == {"node_name": "worker-0"}
    assert NotificationLabels("uc1", "started", "4.10.3").as_labels() == {
        "upgradeconfig_name": "uc1",
        "event": "started",
        "version": "4.10.3",
    }


def test_reserved_state_vocabulary() -> None:
    assert [state.value for state in UpgradeState] == [
        "scheduled",
        "started",
        "finished",
        "control_plane_started",
        "control_plane_completed",
        "workers_started",
        "workers_completed",
    ]
