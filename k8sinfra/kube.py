"""An in-memory Kubernetes object store with watch notifications."""

from __future__ import annotations

import copy
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar

from .labels import Selector, everything


class NotFoundError(LookupError):
    """Raised when a requested object does not exist."""


class AlreadyExistsError(ValueError):
    """Raised when creating an object whose name is already taken."""


@dataclass
class ObjectMeta:
    name: str
    namespace: str = ""
    labels: dict[str, str] = field(default_factory=dict)


@dataclass
class Namespace:
    kind: ClassVar[str] = "Namespace"
    metadata: ObjectMeta


@dataclass
class Node:
    kind: ClassVar[str] = "Node"
    metadata: ObjectMeta


@dataclass
class Pod:
    kind: ClassVar[str] = "Pod"
    metadata: ObjectMeta


@dataclass
class Secret:
    kind: ClassVar[str] = "Secret"
    metadata: ObjectMeta
    data: dict[str, bytes] = field(default_factory=dict)


@dataclass
class Service:
    kind: ClassVar[str] = "Service"
    metadata: ObjectMeta


@dataclass
class EndpointAddress:
    ip: str


@dataclass
class EndpointPort:
    port: int
    name: str = ""
    protocol: str = "TCP"


@dataclass
class EndpointSubset:
    addresses: list[EndpointAddress] = field(default_factory=list)
    ports: list[EndpointPort] = field(default_factory=list)


@dataclass
class Endpoints:
    kind: ClassVar[str] = "Endpoints"
    metadata: ObjectMeta
    subsets: list[EndpointSubset] = field(default_factory=list)


@dataclass(frozen=True)
class Action:
    """A recorded request against the cluster."""

    verb: str
    kind: str
    namespace: str = ""


WatchCallback = Callable[[str, Any], None]


class Cluster:
    """Holds objects by kind and notifies watchers of additions and deletions."""

    def __init__(self, *args: Any) -> None:
        self._lock = threading.RLock()
        self._objects: dict[str, dict[tuple[str, str], Any]] = {}
        self._watchers: dict[str, list[WatchCallback]] = {}
        self._actions: list[Action] = []
        for obj in args:
            self._store(obj)

    def _store(self, obj: Any) -> Any:
        kind = obj.kind
        key = (obj.metadata.namespace, obj.metadata.name)
        bucket = self._objects.setdefault(kind, {})
        if key in bucket:
            raise AlreadyExistsError(f"{kind} {key[1]!r} already exists in {key[0]!r}")
        stored = copy.deepcopy(obj)
        bucket[key] = stored
        return stored

    def _notify(self, kind: str, event: str, obj: Any) -> None:
        with self._lock:
            callbacks = list(self._watchers.get(kind, ()))
        for callback in callbacks:
            callback(event, copy.deepcopy(obj))

    def create(self, obj: Any) -> Any:
        """Store a copy of obj and notify watchers; return a copy."""
        with self._lock:
            self._actions.append(Action("create", obj.kind, obj.metadata.namespace))
            stored = self._store(obj)
        self._notify(obj.kind, "ADDED", stored)
        return copy.deepcopy(stored)

    def delete(self, kind: str, name: str, namespace: str = "") -> None:
        """Remove an object and notify watchers."""
        with self._lock:
            self._actions.append(Action("delete", kind, namespace))
            removed = self._objects.get(kind, {}).pop((namespace, name), None)
        if removed is None:
            raise NotFoundError(f"{kind} {name!r} not found in {namespace!r}")
        self._notify(kind, "DELETED", removed)

    def list(self, kind: str, namespace: str = "", selector: Selector | None = None) -> list:
        """Return copies of objects of kind, in namespace ("" for all), matching selector."""
        selector = selector or everything()
        with self._lock:
            self._actions.append(Action("list", kind, namespace))
            found = [
                copy.deepcopy(obj)
                for (ns, _), obj in sorted(self._objects.get(kind, {}).items())
                if (not namespace or ns == namespace) and selector.matches(obj.metadata.labels)
            ]
        return found

    def watch(self, kind: str, callback: WatchCallback) -> None:
        with self._lock:
            self._watchers.setdefault(kind, []).append(callback)

    def unwatch(self, kind: str, callback: WatchCallback) -> None:
        with self._lock:
            callbacks = self._watchers.get(kind, [])
            if callback in callbacks:
                callbacks.remove(callback)

    def actions(self) -> list[Action]:
        with self._lock:
            return list(self._actions)