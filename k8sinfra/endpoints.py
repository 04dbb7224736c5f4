"""Discovery of service endpoints as host:port strings."""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Protocol

from .kube import Cluster
from .labels import parse_selector
from .listers import Lister


class DiscoveryTimeoutError(TimeoutError):
    """No endpoints were found before the timeout elapsed."""

    def __init__(self, message: str = "timeout discovering endpoints") -> None:
        super().__init__(message)


@dataclass
class EndpointsDiscoveryConfig:
    """Criteria for endpoint discovery."""

    client: Cluster | None = None
    label_selector: str = ""
    namespace: str = ""
    port: int = 0


class _Discoverer(Protocol):
    def discover(self) -> list[str]: ...


def _join_host_port(host: str, port: int) -> str:
    return f"[{host}]:{port}" if ":" in host else f"{host}:{port}"


class EndpointsDiscoverer:
    """Lists endpoint addresses matching the configured criteria."""

    def __init__(self, config: EndpointsDiscoveryConfig) -> None:
        if config.client is None:
            raise ValueError("client must be configured")
        self._port = config.port
        self._lister = Lister(
            config.client,
            "Endpoints",
            config.namespace,
            parse_selector(config.label_selector),
        )

    def discover(self) -> list[str]:
        """Return sorted host:port strings for every address and accepted port."""
        hosts = [
            _join_host_port(address.ip, port.port)
            for endpoints in self._lister.list()
            for subset in endpoints.subsets
            for address in subset.addresses
            for port in subset.ports
            if not self._port or self._port == port.port
        ]
        return sorted(hosts)

    def close(self) -> None:
        self._lister.close()


def _seconds(value: float | timedelta) -> float:
    return value.total_seconds() if isinstance(value, timedelta) else float(value)


class EndpointsDiscovererWithTimeout:
    """Polls an inner discoverer until it returns endpoints or the timeout passes."""

    def __init__(
        self,
        inner: _Discoverer,
        backoff_delay: float | timedelta = 0,
        timeout: float | timedelta = 0,
    ) -> None:
        self.inner = inner
        self.backoff_delay = _seconds(backoff_delay)
        self.timeout = _seconds(timeout)

    def discover(self) -> list[str]:
        """Return the first non-empty result; errors from the inner discoverer propagate."""
        start = time.monotonic()
        while time.monotonic() - start < self.timeout:
            endpoints = self.inner.discover()
            if endpoints:
                return endpoints
            time.sleep(self.backoff_delay)
        raise DiscoveryTimeoutError()