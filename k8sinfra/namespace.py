"""Namespace filtering by label selectors, with a per-interval result cache."""

from __future__ import annotations

import logging
import threading
from typing import Any, Mapping, Protocol

from .config import InvalidMatchExpressionsValueError, NamespaceSelector
from .kube import Cluster
from .labels import SelectorError, parse_selector, selector_from_set
from .listers import Lister

_log = logging.getLogger(__name__)


class NamespaceFilterer(Protocol):
    def is_allowed(self, namespace: str) -> bool: ...


class NamespaceCache(Protocol):
    def put(self, namespace: str, match: bool) -> None: ...

    def match(self, namespace: str) -> tuple[bool, bool]: ...

    def vacuum(self) -> None: ...


class NamespaceInMemoryStore:
    """Thread-safe cache of namespace filtering decisions."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._cache: dict[str, bool] = {}
        self._lock = threading.Lock()
        self._logger = logger or _log

    def put(self, namespace: str, match: bool) -> None:
        with self._lock:
            self._cache[namespace] = match

    def match(self, namespace: str) -> tuple[bool, bool]:
        """Return (match, found); a miss gives (False, False)."""
        with self._lock:
            if namespace in self._cache:
                return self._cache[namespace], True
            return False, False

    def vacuum(self) -> None:
        """Drop every cached entry."""
        with self._lock:
            self._logger.debug("cleaning cache: len %d ...", len(self._cache))
            self._cache = {}
            self._logger.debug("cache cleaned: len %d ...", len(self._cache))


class NamespaceFilter:
    """Decides whether a namespace may be scraped, following the namespaces in a cluster."""

    def __init__(
        self,
        selector: NamespaceSelector | None,
        client: Cluster,
        logger: logging.Logger | None = None,
    ) -> None:
        self._selector = selector
        self._logger = logger or _log
        self._lister = Lister(client, "Namespace")

    def is_allowed(self, namespace: str) -> bool:
        """Check the namespace against matchLabels, or else matchExpressions."""
        if self._selector is None:
            self._logger.debug("Allowing %r namespace as selector is nil", namespace)
            return True
        if self._selector.match_labels is not None:
            self._logger.debug("Filtering %r namespace by MatchLabels", namespace)
            return self._match_by_labels(namespace)
        if self._selector.match_expressions is not None:
            self._logger.debug("Filtering %r namespace by MatchExpressions", namespace)
            return self._match_by_expressions(namespace)
        return True

    def _match_by_labels(self, namespace: str) -> bool:
        labels = self._string_labels(self._selector.match_labels or {})
        found = self._lister.list(selector_from_set(labels))
        return _contains(namespace, found)

    def _match_by_expressions(self, namespace: str) -> bool:
        for expression in self._selector.match_expressions or []:
            try:
                text = expression.to_selector()
            except InvalidMatchExpressionsValueError as exc:
                self._logger.error("%s", exc)
                return True
            try:
                selector = parse_selector(text)
            except SelectorError as exc:
                self._logger.error("parsing labels: %s", exc)
                return True
            if not _contains(namespace, self._lister.list(selector)):
                return False
        return True

    def _string_labels(self, match_labels: Mapping[str, Any]) -> dict[str, str]:
        result = {}
        for key, value in match_labels.items():
            if not isinstance(value, str):
                self._logger.error(
                    "parseToStringMap value into string: %r, type: %s",
                    value,
                    type(value).__name__,
                )
                continue
            result[key] = value
        return result

    def close(self) -> None:
        """Stop following namespace changes in the cluster."""
        self._lister.close()

    def __enter__(self) -> NamespaceFilter:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class CachedNamespaceFilter:
    """Wraps a filter with a cache consulted first."""

    def __init__(self, filter: NamespaceFilterer, cache: NamespaceCache) -> None:
        self._filter = filter
        self._cache = cache

    def is_allowed(self, namespace: str) -> bool:
        match, found = self._cache.match(namespace)
        if found:
            return match
        match = self._filter.is_allowed(namespace)
        self._cache.put(namespace, match)
        return match


def _contains(namespace: str, namespaces: list) -> bool:
    return any(ns.metadata.name == namespace for ns in namespaces)