"""Cached listers that mirror cluster objects through watch notifications."""

from __future__ import annotations

import copy
import threading
from typing import Any

from .kube import Cluster, NotFoundError
from .labels import Selector, everything


class Lister:
    """A local cache of objects of one kind, kept current until closed."""

    def __init__(
        self,
        client: Cluster,
        kind: str,
        namespace: str = "",
        selector: Selector | None = None,
    ) -> None:
        self._client = client
        self._kind = kind
        self._namespace = namespace
        self._selector = selector or everything()
        self._lock = threading.Lock()
        self._cache: dict[tuple[str, str], Any] = {}
        self._closed = False
        client.watch(kind, self._on_event)
        for obj in client.list(kind, namespace, self._selector):
            self._put(obj)

    def _wanted(self, obj: Any) -> bool:
        meta = obj.metadata
        return (not self._namespace or meta.namespace == self._namespace) and (
            self._selector.matches(meta.labels)
        )

    def _put(self, obj: Any) -> None:
        with self._lock:
            if not self._closed:
                self._cache[(obj.metadata.namespace, obj.metadata.name)] = obj

    def _on_event(self, event: str, obj: Any) -> None:
        if not self._wanted(obj):
            return
        if event == "DELETED":
            with self._lock:
                if not self._closed:
                    self._cache.pop((obj.metadata.namespace, obj.metadata.name), None)
        else:
            self._put(obj)

    def get(self, name: str) -> Any:
        """Return a copy of the cached object with that name, or raise NotFoundError."""
        with self._lock:
            for (_, obj_name), obj in sorted(self._cache.items()):
                if obj_name == name:
                    return copy.deepcopy(obj)
        raise NotFoundError(f"{self._kind.lower()} {name!r} not found")

    def list(self, selector: Selector | None = None) -> list:
        """Return copies of cached objects matching selector, ordered by namespace and name."""
        selector = selector or everything()
        with self._lock:
            return [
                copy.deepcopy(obj)
                for _, obj in sorted(self._cache.items())
                if selector.matches(obj.metadata.labels)
            ]

    def close(self) -> None:
        """Stop following the cluster; the cache keeps what it already has."""
        with self._lock:
            self._closed = True
        self._client.unwatch(self._kind, self._on_event)

    def __enter__(self) -> Lister:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class MultiNamespaceListerer:
    """One lister per namespace, built up front."""

    def __init__(self, client: Cluster, kind: str, namespaces: list[str]) -> None:
        self._listers = {ns: Lister(client, kind, ns) for ns in namespaces}

    def lister(self, namespace: str) -> Lister | None:
        """Return the lister for namespace, or None if none was built for it."""
        return self._listers.get(namespace)

    def close(self) -> None:
        for lister in self._listers.values():
            lister.close()

    def __enter__(self) -> MultiNamespaceListerer:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


def new_node_lister(client: Cluster) -> Lister:
    return Lister(client, "Node")


def new_services_lister(client: Cluster) -> Lister:
    return Lister(client, "Service")


def new_namespace_pod_listerer(namespaces: list[str], client: Cluster) -> MultiNamespaceListerer:
    return MultiNamespaceListerer(client, "Pod", namespaces)


def new_namespace_secret_listerer(
    namespaces: list[str], client: Cluster
) -> MultiNamespaceListerer:
    return MultiNamespaceListerer(client, "Secret", namespaces)