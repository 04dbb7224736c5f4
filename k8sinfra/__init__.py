"""Configuration, label selectors, in-memory cluster listers, discovery and caching for Kubernetes monitoring."""

__version__ = "0.1.0"

__all__ = [
    "config",
    "endpoints",
    "kube",
    "labels",
    "listers",
    "namespace",
    "storer",
    "versions",
]