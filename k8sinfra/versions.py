"""Kubernetes versions for which recorded metric data exists."""

from __future__ import annotations

from bisect import bisect_left

_ALL_VERSIONS = (
    "1_19",
    "1_20",
    "1_21",
    "1_22",
    "1_23",
    "1_24",
    "1_25",
    "1_26",
)


def all_versions() -> list[str]:
    """Return every known version, oldest first."""
    return list(_ALL_VERSIONS)


def latest_version() -> str:
    """Return the newest known version."""
    return _ALL_VERSIONS[-1]


def is_below(a: str, b: str) -> bool:
    """Return True when version a comes before version b."""
    return bisect_left(_ALL_VERSIONS, a) < bisect_left(_ALL_VERSIONS, b)