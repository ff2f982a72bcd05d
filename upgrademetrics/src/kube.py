from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Any, Protocol

from kubernetes import client, config
from kubernetes.client import ApiException, CoreV1Api, CustomObjectsApi
from kubernetes.config.config_exception import ConfigException
from urllib3.exceptions import HTTPError as Urllib3HTTPError

from upgrademetrics.src.config import (
    DEFAULT_PROMETHEUS_NAMESPACE,
    DEFAULT_PROMETHEUS_ROUTE_NAME,
    DEFAULT_PROMETHEUS_SERVICE_ACCOUNT,
    DEFAULT_TOKEN_SECRET_PREFIX,
)
from upgrademetrics.src.errors import DiscoveryError, HostNotFoundError, TokenNotFoundError

LOGGER = logging.getLogger(__name__)

ROUTE_GROUP = "route.openshift.io"
ROUTE_VERSION = "v1"
ROUTE_PLURAL = "routes"
SERVICE_ACCOUNT_TOKEN_KEY = "token"

_READ_ERRORS = (ApiException, Urllib3HTTPError)


@dataclass(frozen=True)
class Credential:
    """Prometheus endpoint and bearer token, resolved once per client."""

    host: str
    token: str = ""

    def __repr__(self) -> str:
        return f"Credential(host={self.host!r}, token=<redacted>)"


class CredentialSource(Protocol):
    """Anything able to resolve the Prometheus host and bearer token."""

    def get_host(self) -> str: ...

    def get_token(self) -> str: ...


def load_kube_configuration() -> None:
    """Load Kubernetes client configuration.

    Attempts in-cluster config first (running inside a pod), falling back
    to the local kubeconfig for development.
    """
    try:
        config.load_incluster_config()
        LOGGER.info("Loaded in-cluster Kubernetes configuration")
    except ConfigException:
        config.load_kube_config()
        LOGGER.info("Loaded local kubeconfig")


def build_clients() -> tuple[CoreV1Api, CustomObjectsApi]:
    """Return CoreV1 and CustomObjects API clients using the active kube configuration."""
    return client.CoreV1Api(), client.CustomObjectsApi()


class KubeCredentialSource:
    """Reads the Prometheus route, service account and token secret from the cluster.

    The route is an OpenShift custom resource, so it is fetched through the
    custom-objects API and handled as a plain dict. Service accounts and
    secrets come back as typed ``V1`` models from the core API.
    """

    def __init__(
        self,
        core_api: CoreV1Api,
        custom_objects_api: CustomObjectsApi,
        namespace: str = DEFAULT_PROMETHEUS_NAMESPACE,
        route_name: str = DEFAULT_PROMETHEUS_ROUTE_NAME,
        service_account_name: str = DEFAULT_PROMETHEUS_SERVICE_ACCOUNT,
        token_secret_prefix: str = DEFAULT_TOKEN_SECRET_PREFIX,
    ) -> None:
        self.core_api = core_api
        self.custom_objects_api = custom_objects_api
        self.namespace = namespace
        self.route_name = route_name
        self.service_account_name = service_account_name
        self.token_secret_prefix = token_secret_prefix

    def get_host(self) -> str:
        """Return ``spec.host`` of the Prometheus route."""
        try:
            route = self.custom_objects_api.get_namespaced_custom_object(
                group=ROUTE_GROUP,
                version=ROUTE_VERSION,
                namespace=self.namespace,
                plural=ROUTE_PLURAL,
                name=self.route_name,
            )
        except ApiException as exc:
            if exc.status == 404:
                raise HostNotFoundError(
                    f"Route {self.namespace}/{self.route_name} not found"
                ) from exc
            raise DiscoveryError(
                f"Unable to fetch route {self.namespace}/{self.route_name}: {exc.reason}"
            ) from exc
        except Urllib3HTTPError as exc:
            raise DiscoveryError(
                f"Unable to fetch route {self.namespace}/{self.route_name}: {exc}"
            ) from exc

        host = _route_host(route)
        if not host:
            raise DiscoveryError(f"Route {self.namespace}/{self.route_name} has no spec.host")
        return host

    def find_token_secret_name(self) -> str:
        """Return the name of the service account's token secret.

        When several references carry the prefix, the last one listed wins.
        """
        try:
            service_account = self.core_api.read_namespaced_service_account(
                name=self.service_account_name, namespace=self.namespace
            )
        except _READ_ERRORS as exc:
            raise DiscoveryError(
                f"Unable to fetch {self.service_account_name} service account: {exc}"
            ) from exc

        token_secret = ""
        for reference in getattr(service_account, "secrets", None) or []:
            name = getattr(reference, "name", None) or ""
            if name.startswith(self.token_secret_prefix):
                token_secret = name
        if not token_secret:
            raise TokenNotFoundError(
                f"Failed to find token secret for {self.service_account_name} service account"
            )
        return token_secret

    def get_token(self) -> str:
        """Return the decoded bearer token. An empty token is returned as ``""``."""
        secret_name = self.find_token_secret_name()
        try:
            secret = self.core_api.read_namespaced_secret(
                name=secret_name, namespace=self.namespace
            )
        except _READ_ERRORS as exc:
            raise DiscoveryError(f"Unable to fetch secret {secret_name}: {exc}") from exc

        encoded = (getattr(secret, "data", None) or {}).get(SERVICE_ACCOUNT_TOKEN_KEY)
        if not encoded:
            return ""
        try:
            return base64.b64decode(encoded, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as exc:
            raise DiscoveryError(f"Secret {secret_name} holds a malformed token") from exc


def _route_host(route: Any) -> str:
    if isinstance(route, dict):
        spec = route.get("spec") or {}
        return str(spec.get("host") or "")
    spec = getattr(route, "spec", None)
    return str(getattr(spec, "host", "") or "")


def discover_credential(source: CredentialSource) -> Credential:
    """Resolve host and token once. Callers needing rotation build a new client."""
    host = source.get_host()
    token = source.get_token()
    LOGGER.info("Resolved Prometheus endpoint %s", host)
    if not token:
        LOGGER.warning("Prometheus token secret is empty; queries will carry an empty bearer token")
    return Credential(host=host, token=token)
