# k8sinfra

Building blocks for a Kubernetes monitoring integration: typed configuration
loading, label selectors, an in-memory cluster model with watch-driven
listers, endpoint discovery, namespace filtering and a TTL cache.

## Installation

```
pip install k8sinfra
```

To run the test suite:

```
pip install "k8sinfra[test]"
pytest
```

## Modules

| Module | What it provides |
| --- | --- |
| `k8sinfra.config` | `Config` and its sections, `load_config`, `check_namespace_selector_config`, `ConfigError` |
| `k8sinfra.labels` | `Selector`, `everything`, `selector_from_set`, `parse_selector`, `SelectorError` |
| `k8sinfra.kube` | Object types (`Namespace`, `Node`, `Pod`, `Secret`, `Service`, `Endpoints`), `Cluster`, `Action` |
| `k8sinfra.listers` | `Lister`, `MultiNamespaceListerer` and the `new_*` constructors |
| `k8sinfra.endpoints` | `EndpointsDiscoverer`, `EndpointsDiscovererWithTimeout`, `DiscoveryTimeoutError` |
| `k8sinfra.namespace` | `NamespaceInMemoryStore`, `NamespaceFilter`, `CachedNamespaceFilter` |
| `k8sinfra.storer` | `InMemoryStore`, a cache that drops expired entries periodically |
| `k8sinfra.versions` | `all_versions`, `latest_version`, `is_below` |

## Configuration

`load_config(file_path, file_name)` looks for `<file_name>.json`,
`<file_name>.yaml` or `<file_name>.yml`, first in `file_path` and then in the
current directory. It starts from built-in defaults, merges the file over
them, overlays environment variables, and returns a `Config`. A missing or
unreadable file raises `ConfigError`.

```python
from k8sinfra.config import load_config

config = load_config("/etc/newrelic-infra", "nri-kubernetes")
print(config.cluster_name, config.interval)
```

Keys are written in camel case as in the file (`clusterName`, `nodeName`,
`interval`, `sink`, `kubelet`, `controlPlane`, `ksm`, `namespaceSelector`, ...)
and are matched without regard to case. Unknown keys raise `ConfigError`.
Durations accept strings such as `"15s"` or `"1m30s"`.

Defaults include `clusterName: cluster`, `nodeName: node`, `nodeIP: node`,
`sink.type: http`, a 10 second timeout and 3 retries for the kubelet, control
plane and KSM sections, 4 kubelet scraper reruns, and KSM discovery with a
7 second backoff and a 60 second timeout.

Environment variables named `NRI_KUBERNETES_` followed by the key path joined
with underscores, in upper case (for example `NRI_KUBERNETES_CLUSTERNAME` or
`NRI_KUBERNETES_KUBELET_TIMEOUT`), override a setting. Only settings that
already have a value, from the defaults or from the file, are looked up this
way, and an empty variable is ignored.

A namespace selector restricts which namespaces are monitored:

```yaml
namespaceSelector:
  matchLabels:
    newrelic.com/scrape: "true"
  matchExpressions:
    - key: newrelic.com/scrape
      operator: NotIn
      values: ["false"]
```

Every label value must be a string; otherwise loading raises
`InvalidMatchLabelsValueError` or `InvalidMatchExpressionsValueError`, both
subclasses of `ConfigError`. `Expression.to_selector()` renders an
expression as selector text, such as `newrelic.com/scrape notin (false)`.

## Label selectors

```python
from k8sinfra.labels import everything, parse_selector, selector_from_set

parse_selector("tier in (web,api)").matches({"tier": "web"})   # True
parse_selector("app=db,!legacy").matches({"app": "db"})         # True
selector_from_set({"app": "db"}).matches({"app": "web"})        # False
everything().matches({})                                        # True
```

Supported requirements are `key=value`, `key==value`, `key!=value`,
`key in (...)`, `key notin (...)`, `key`, `!key`, `key>n` and `key<n`, joined
by commas. Malformed text raises `SelectorError`.

## Cluster model and listers

`Cluster` holds objects in memory. `create`, `delete` and `list` store,
remove and query them (raising `AlreadyExistsError` or `NotFoundError` as
fits), `watch` and `unwatch` register callbacks that receive `"ADDED"` and
`"DELETED"` events, and `actions()` returns every request made, as `Action`
records.

A `Lister` keeps a local copy of one kind of object, optionally restricted to
a namespace and a selector, kept up to date through watches until it is
closed. Reads never go back to the cluster.

```python
from k8sinfra.kube import Cluster, Node, ObjectMeta
from k8sinfra.listers import new_node_lister

cluster = Cluster()
with new_node_lister(cluster) as nodes:
    cluster.create(Node(ObjectMeta(name="node-1")))
    nodes.get("node-1")        # a copy of the node
    nodes.list()               # every cached node
```

`new_services_lister` builds a service lister. `new_namespace_pod_listerer`
and `new_namespace_secret_listerer` build one lister per namespace;
`MultiNamespaceListerer.lister(namespace)` returns it, or `None` for a
namespace it was not built for.

## Endpoint discovery

`EndpointsDiscoverer(EndpointsDiscoveryConfig(client=..., label_selector=...,
namespace=..., port=...))` returns sorted `host:port` strings for every
endpoint address and port matching the criteria; a `port` of 0 accepts every
port. Building one without a client raises `ValueError`.

`EndpointsDiscovererWithTimeout(inner, backoff_delay, timeout)` calls the
inner discoverer, sleeping `backoff_delay` between attempts, until it returns
a non-empty list, and raises `DiscoveryTimeoutError` once `timeout` has
passed. Both delays take seconds or a `timedelta`. Errors from the inner
discoverer propagate.

## Namespace filtering

`NamespaceFilter(selector, client, logger)` decides with `is_allowed(namespace)`
whether a namespace passes a `NamespaceSelector`: by `match_labels` if set,
otherwise by every one of `match_expressions`; with no selector every
namespace passes. `CachedNamespaceFilter(filter, cache)` consults a
`NamespaceInMemoryStore` first and remembers each decision; `vacuum()` clears
the store.

## TTL cache

`InMemoryStore(ttl, interval, logger)` stores values with the time they were
set; a background thread removes entries older than `ttl` every `interval`
(seconds or `timedelta`).

- `set(key, value)` returns the Unix timestamp of the entry.
- `get(key, expected_type)` returns `(timestamp, value)`, raises
  `NotFoundError` for a missing key and `TypeError` when the value is not an
  `expected_type`.
- `delete(key)` removes a key; `save()` returns a snapshot of the values.
- `stop_vacuum()` stops the clean-up; the store is also a context manager
  that stops it on exit.

## Versions

`all_versions()` lists the Kubernetes versions known to the package, from
`"1_19"` to `"1_26"`, `latest_version()` returns the newest, and
`is_below(a, b)` compares two of them.

## What this package does not do

It provides no command to run and does not scrape metrics from the kubelet,
kube-state-metrics or control plane components, nor send them anywhere. It
does not talk to a real Kubernetes API server: `Cluster` is an in-memory
model, and listers, endpoint discovery and namespace filtering work against
it.