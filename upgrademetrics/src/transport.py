from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import requests
from requests.auth import AuthBase

from upgrademetrics.src.config import DEFAULT_TLS_HANDSHAKE_TIMEOUT_SECONDS
from upgrademetrics.src.errors import TransportError

LOGGER = logging.getLogger(__name__)


class BearerAuth(AuthBase):
    """Attach ``Authorization: Bearer <token>`` to every outgoing request."""

    def __init__(self, token: str) -> None:
        self._token = token

    def __call__(self, request: requests.PreparedRequest) -> requests.PreparedRequest:
        request.headers["Authorization"] = f"Bearer {self._token}"
        return request

    def __repr__(self) -> str:
        return "BearerAuth(token=<redacted>)"


class PrometheusTransport:
    """Authenticated HTTP session used for every Prometheus query.

    ``tls_handshake_timeout`` bounds connection setup, TLS handshake included.
    ``request_timeout`` bounds the wait for response data; the default of
    ``None`` waits indefinitely, so a stalled endpoint blocks the caller
    until it answers or the socket is closed.
    """

    def __init__(
        self,
        token: str,
        tls_handshake_timeout: float = DEFAULT_TLS_HANDSHAKE_TIMEOUT_SECONDS,
        request_timeout: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.tls_handshake_timeout = tls_handshake_timeout
        self.request_timeout = request_timeout
        self.session = session or requests.Session()
        self.session.auth = BearerAuth(token)

    @property
    def timeout(self) -> tuple[float, float | None]:
        return (self.tls_handshake_timeout, self.request_timeout)

    def get(self, url: str, params: Mapping[str, Any] | None = None) -> requests.Response:
        """Issue an authenticated GET, translating client failures into :class:`TransportError`."""
        try:
            return self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as exc:
            LOGGER.warning("Prometheus request to %s failed: %s", url, exc)
            raise TransportError(f"Error when querying Prometheus: {exc}") from exc

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> PrometheusTransport:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
