from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Sequence

from prometheus_client import CollectorRegistry

from upgrademetrics.src.client import UpgradeMetricsClient, build_metrics_client_from_env
from upgrademetrics.src.config import ConfigError
from upgrademetrics.src.errors import UpgradeMetricsError
from upgrademetrics.src.kube import build_clients, load_kube_configuration
from upgrademetrics.src.logs import configure_logging

LOGGER = logging.getLogger(__name__)


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="upgrademetrics",
        description="Run the upgrade operator's Prometheus checks against the current cluster",
    )
    parser.add_argument("--log-level", help="Overrides LOG_LEVEL (default INFO)")
    commands = parser.add_subparsers(dest="command", required=True)

    query = commands.add_parser("query", help="Run a raw instant query and print the result")
    query.add_argument("promql")

    alert = commands.add_parser("alert-firing", help="Report whether an alert is firing")
    alert.add_argument("alert")
    alert.add_argument(
        "--namespace",
        action="append",
        default=[],
        dest="namespaces",
        help="Namespace to check; repeat for several",
    )
    alert.add_argument(
        "--exclude-namespace",
        action="append",
        default=[],
        dest="excluded_namespaces",
        help="Namespace to ignore; only a single exclusion is honoured",
    )

    notification = commands.add_parser(
        "notification-sent", help="Report whether a notification event was already emitted"
    )
    notification.add_argument("upgradeconfig_name")
    notification.add_argument("event")
    notification.add_argument("version")

    version = commands.add_parser(
        "cluster-version", help="Report whether the cluster runs the given version"
    )
    version.add_argument("version")
    return parser.parse_args(argv)


def run_command(client: UpgradeMetricsClient, args: argparse.Namespace) -> str:
    if args.command == "query":
        return json.dumps(client.query(args.promql).to_dict())
    if args.command == "alert-firing":
        result = client.is_alert_firing(args.alert, args.namespaces, args.excluded_namespaces)
    elif args.command == "notification-sent":
        result = client.is_metric_notification_event_sent_set(
            args.upgradeconfig_name, args.event, args.version
        )
    elif args.command == "cluster-version":
        result = client.is_cluster_version_at_version(args.version)
    else:
        raise ValueError(f"Unknown command: {args.command}")
    return "true" if result else "false"


def main(argv: Sequence[str] | None = None) -> int:
    """Entrypoint: configure logging, discover Prometheus, run one check and print it."""
    args = _parse_args(argv)
    configure_logging(args.log_level)

    load_kube_configuration()
    core_api, custom_objects_api = build_clients()

    try:
        client = build_metrics_client_from_env(
            core_api=core_api,
            custom_objects_api=custom_objects_api,
            registry=CollectorRegistry(),
        )
    except (ConfigError, UpgradeMetricsError):
        LOGGER.exception("Unable to build the upgrade metrics client")
        return 1

    try:
        print(run_command(client, args))
    except UpgradeMetricsError:
        LOGGER.exception("Prometheus check %s failed", args.command)
        return 1
    finally:
        client.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
