"""Integration configuration: data model, defaults, file and environment loading."""

from __future__ import annotations

import copy
import json
import os
import re
from dataclasses import MISSING, dataclass, field, fields
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Callable

import yaml

DEFAULT_CONFIG_FILE_NAME = "nri-kubernetes"
DEFAULT_CONFIG_FOLDER_NAME = "/etc/newrelic-infra"

DEFAULT_TIMEOUT = timedelta(seconds=10)
DEFAULT_RETRIES = 3
DEFAULT_SCRAPER_MAX_RERUNS = 4
DEFAULT_AGENT_TIMEOUT = timedelta(seconds=3)
DEFAULT_PROBE_TIMEOUT = timedelta(seconds=90)
DEFAULT_PROBE_BACKOFF = timedelta(seconds=5)

DEFAULT_NETWORK_ROUTE_FILE = "/proc/net/route"

SINK_TYPE_HTTP = "http"
SINK_TYPE_STDOUT = "stdout"

ENV_PREFIX = "NRI_KUBERNETES"

_CONFIG_EXTENSIONS = ("json", "yaml", "yml")


class ConfigError(Exception):
    """Raised when the configuration cannot be found, read or decoded."""


class InvalidMatchLabelsValueError(ConfigError):
    """A namespaceSelector matchLabels value is not a string."""


class InvalidMatchExpressionsValueError(ConfigError):
    """A namespaceSelector matchExpressions value is not a string."""


# --- value decoding -------------------------------------------------------

Decoder = Callable[[Any, str], Any]


def _go_value(value: Any) -> str:
    if value is None:
        return "<nil>"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _go_type(value: Any) -> str:
    if value is None:
        return "<nil>"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int"
    if isinstance(value, float):
        return "float64"
    if isinstance(value, str):
        return "string"
    if isinstance(value, dict):
        return "map[string]interface {}"
    if isinstance(value, list):
        return "[]interface {}"
    return type(value).__name__


def _unconvertible(path: str, expected: str, value: Any) -> ConfigError:
    return ConfigError(
        f"'{path}' expected type '{expected}', got unconvertible type "
        f"'{_go_type(value)}', value: '{_go_value(value)}'"
    )


_TRUE_STRINGS = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE_STRINGS = {"0", "f", "F", "FALSE", "false", "False"}


def _decode_bool(value: Any, path: str) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        if value == "":
            return False
        if value in _TRUE_STRINGS:
            return True
        if value in _FALSE_STRINGS:
            return False
        raise ConfigError(f"cannot parse '{path}' as bool: invalid syntax {value!r}")
    raise _unconvertible(path, "bool", value)


def _decode_int(bits: int = 64) -> Decoder:
    low, high = -(2 ** (bits - 1)), 2 ** (bits - 1) - 1

    def decode(value: Any, path: str) -> int:
        if value is None:
            return 0
        if isinstance(value, bool):
            result = int(value)
        elif isinstance(value, int):
            result = value
        elif isinstance(value, float):
            result = int(value)
        elif isinstance(value, str):
            if value == "":
                return 0
            try:
                result = int(value, 0)
            except ValueError:
                try:
                    result = int(value, 10)
                except ValueError:
                    raise ConfigError(
                        f"cannot parse '{path}' as int: invalid syntax {value!r}"
                    ) from None
        else:
            raise _unconvertible(path, f"int{bits}", value)
        if not low <= result <= high:
            raise ConfigError(f"cannot parse '{path}', {result} overflows int{bits}")
        return result

    return decode


def _decode_str(value: Any, path: str) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        text = format(value, "f")
        return text.rstrip("0").rstrip(".") if "." in text else text
    raise _unconvertible(path, "string", value)


_DURATION_UNITS = {
    "ns": Decimal(1),
    "us": Decimal(1_000),
    "µs": Decimal(1_000),
    "μs": Decimal(1_000),
    "ms": Decimal(1_000_000),
    "s": Decimal(1_000_000_000),
    "m": Decimal(60_000_000_000),
    "h": Decimal(3_600_000_000_000),
}
_DURATION_PART = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def _parse_duration(text: str) -> timedelta:
    rest = text
    sign = 1
    if rest[:1] in ("+", "-"):
        sign = -1 if rest[0] == "-" else 1
        rest = rest[1:]
    if rest == "0":
        return timedelta(0)
    if not rest:
        raise ConfigError(f'time: invalid duration "{text}"')
    nanoseconds = Decimal(0)
    pos = 0
    while pos < len(rest):
        match = _DURATION_PART.match(rest, pos)
        if match is None:
            raise ConfigError(f'time: invalid duration "{text}"')
        try:
            amount = Decimal(match.group(1))
        except InvalidOperation:
            raise ConfigError(f'time: invalid duration "{text}"') from None
        nanoseconds += amount * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    return timedelta(microseconds=float(sign * nanoseconds / 1000))


def _decode_duration(value: Any, path: str) -> timedelta:
    if value is None:
        return timedelta(0)
    if isinstance(value, timedelta):
        return value
    if isinstance(value, str):
        try:
            return _parse_duration(value)
        except ConfigError as exc:
            raise ConfigError(f"decoding '{path}': {exc}") from None
    if isinstance(value, bool):
        raise _unconvertible(path, "time.Duration", value)
    if isinstance(value, (int, float)):
        return timedelta(microseconds=value / 1000)
    raise _unconvertible(path, "time.Duration", value)


def _decode_any(value: Any, path: str) -> Any:
    """Keep the value as it is, detached from the settings tree it came from."""
    return copy.deepcopy(value)


def _decode_any_map(value: Any, path: str) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise _unconvertible(path, "map[string]interface {}", value)
    return {str(k): v for k, v in value.items()}


def _decode_list(item: Decoder) -> Decoder:
    def decode(value: Any, path: str) -> list:
        if value is None:
            return []
        items = value if isinstance(value, list) else [value]
        return [item(element, f"{path}[{index}]") for index, element in enumerate(items)]

    return decode


def _decode_optional(inner: Decoder) -> Decoder:
    def decode(value: Any, path: str) -> Any:
        return None if value is None else inner(value, path)

    return decode


def _decode_struct(cls: type) -> Decoder:
    def decode(value: Any, path: str) -> Any:
        if value is None:
            return cls()
        if not isinstance(value, dict):
            raise _unconvertible(path or "<root>", "map[string]interface {}", value)
        by_key = {f.metadata["key"].lower(): f for f in fields(cls)}
        unused = sorted(str(k) for k in value if str(k).lower() not in by_key)
        if unused:
            where = f"'{path}'" if path else "root"
            raise ConfigError(f"{where} has invalid keys: {', '.join(unused)}")
        kwargs = {}
        for key, raw in value.items():
            spec = by_key[str(key).lower()]
            child = f"{path}.{spec.metadata['key']}" if path else spec.metadata["key"]
            kwargs[spec.name] = spec.metadata["decode"](raw, child)
        return cls(**kwargs)

    return decode


def _opt(key: str, decode: Decoder, default: Any = MISSING, factory: Any = MISSING) -> Any:
    metadata = {"key": key, "decode": decode}
    if factory is not MISSING:
        return field(default_factory=factory, metadata=metadata)
    return field(default=default, metadata=metadata)


# --- data model -----------------------------------------------------------


@dataclass
class TLSConfig:
    """TLS options for the HTTP sink."""

    enabled: bool = _opt("enabled", _decode_bool, False)
    cert_path: str = _opt("certPath", _decode_str, "")
    key_path: str = _opt("keyPath", _decode_str, "")
    ca_path: str = _opt("caPath", _decode_str, "")


@dataclass
class HTTPSink:
    """Configuration of the HTTP sink."""

    port: int = _opt("port", _decode_int(), 0)
    timeout: timedelta = _opt("timeout", _decode_duration, factory=timedelta)
    retries: int = _opt("retries", _decode_int(), 0)
    tls: TLSConfig = _opt("tls", _decode_struct(TLSConfig), factory=TLSConfig)
    probe_timeout: timedelta = _opt("probeTimeout", _decode_duration, factory=timedelta)
    probe_backoff: timedelta = _opt("probeBackoff", _decode_duration, factory=timedelta)


@dataclass
class Sink:
    """Where the integration reports metrics to."""

    type: str = _opt("type", _decode_str, "")
    http: HTTPSink = _opt("http", _decode_struct(HTTPSink), factory=HTTPSink)


@dataclass
class KSMDiscovery:
    """Timing of kube-state-metrics discovery."""

    backoff_delay: timedelta = _opt("backoffDelay", _decode_duration, factory=timedelta)
    timeout: timedelta = _opt("timeout", _decode_duration, factory=timedelta)


@dataclass
class KSM:
    """Options for the kube-state-metrics scraper."""

    enabled: bool = _opt("enabled", _decode_bool, False)
    static_url: str = _opt("staticURL", _decode_str, "")
    scheme: str = _opt("scheme", _decode_str, "")
    port: int = _opt("port", _decode_int(), 0)
    selector: str = _opt("selector", _decode_str, "")
    namespace: str = _opt("namespace", _decode_str, "")
    distributed: bool = _opt("distributed", _decode_bool, False)
    timeout: timedelta = _opt("timeout", _decode_duration, factory=timedelta)
    retries: int = _opt("retries", _decode_int(), 0)
    discovery: KSMDiscovery = _opt(
        "discovery", _decode_struct(KSMDiscovery), factory=KSMDiscovery
    )


@dataclass
class Kubelet:
    """Options for the kubelet scraper."""

    enabled: bool = _opt("enabled", _decode_bool, False)
    port: int = _opt("port", _decode_int(32), 0)
    scheme: str = _opt("scheme", _decode_str, "")
    network_route_file: str = _opt("networkRouteFile", _decode_str, "")
    timeout: timedelta = _opt("timeout", _decode_duration, factory=timedelta)
    retries: int = _opt("retries", _decode_int(), 0)
    scraper_max_reruns: int = _opt("scraperMaxReruns", _decode_int(), 0)


@dataclass
class MTLS:
    """Where to fetch mutual TLS material from."""

    tls_secret_name: str = _opt("secretName", _decode_str, "")
    tls_secret_namespace: str = _opt("secretNamespace", _decode_str, "")


@dataclass
class Auth:
    """Authentication used against an endpoint."""

    type: str = _opt("type", _decode_str, "")
    mtls: MTLS | None = _opt("mtls", _decode_optional(_decode_struct(MTLS)), None)


@dataclass
class Endpoint:
    """How to perform a request to a component."""

    url: str = _opt("url", _decode_str, "")
    auth: Auth | None = _opt("auth", _decode_optional(_decode_struct(Auth)), None)
    insecure_skip_verify: bool = _opt("insecureSkipVerify", _decode_bool, False)


@dataclass
class AutodiscoverControlPlane:
    """Criteria for matching a control plane pod."""

    namespace: str = _opt("namespace", _decode_str, "")
    selector: str = _opt("selector", _decode_str, "")
    match_node: bool = _opt("matchNode", _decode_bool, False)
    endpoints: list[Endpoint] = _opt(
        "endpoints", _decode_list(_decode_struct(Endpoint)), factory=list
    )


@dataclass
class ControlPlaneComponent:
    """Configuration of one control plane component."""

    enabled: bool = _opt("enabled", _decode_bool, False)
    static_endpoint: Endpoint | None = _opt(
        "staticEndpoint", _decode_optional(_decode_struct(Endpoint)), None
    )
    autodiscover: list[AutodiscoverControlPlane] = _opt(
        "autodiscover", _decode_list(_decode_struct(AutodiscoverControlPlane)), factory=list
    )


@dataclass
class ControlPlane:
    """Options for the control plane scraper."""

    enabled: bool = _opt("enabled", _decode_bool, False)
    etcd: ControlPlaneComponent = _opt(
        "etcd", _decode_struct(ControlPlaneComponent), factory=ControlPlaneComponent
    )
    api_server: ControlPlaneComponent = _opt(
        "apiServer", _decode_struct(ControlPlaneComponent), factory=ControlPlaneComponent
    )
    controller_manager: ControlPlaneComponent = _opt(
        "controllerManager", _decode_struct(ControlPlaneComponent), factory=ControlPlaneComponent
    )
    scheduler: ControlPlaneComponent = _opt(
        "scheduler", _decode_struct(ControlPlaneComponent), factory=ControlPlaneComponent
    )
    timeout: timedelta = _opt("timeout", _decode_duration, factory=timedelta)
    retries: int = _opt("retries", _decode_int(), 0)


@dataclass
class Expression:
    """A namespace selector requirement: key, operator (In/NotIn) and values."""

    key: str = _opt("key", _decode_str, "")
    operator: str = _opt("operator", _decode_str, "")
    values: list[Any] = _opt("values", _decode_list(_decode_any), factory=list)

    def to_selector(self) -> str:
        """Render as a label selector string such as ``key in (a,b)``."""
        rendered = []
        for value in self.values:
            if not isinstance(value, str):
                raise InvalidMatchExpressionsValueError(
                    f"parsing expression invalid value: {_go_value(value)}, "
                    f"type: {_go_type(value)}"
                )
            rendered.append(value)
        return f"{self.key} {self.operator.lower()} ({','.join(rendered)})"


@dataclass
class NamespaceSelector:
    """Custom namespace filtering for monitoring."""

    match_labels: dict[str, Any] | None = _opt(
        "matchLabels", _decode_optional(_decode_any_map), None
    )
    match_expressions: list[Expression] | None = _opt(
        "matchExpressions", _decode_optional(_decode_list(_decode_struct(Expression))), None
    )


@dataclass
class Config:
    """Complete configuration of the integration."""

    verbose: bool = _opt("verbose", _decode_bool, False)
    log_level: str = _opt("logLevel", _decode_str, "")
    cluster_name: str = _opt("clusterName", _decode_str, "")
    kubeconfig_path: str = _opt("kubeconfigPath", _decode_str, "")
    node_ip: str = _opt("nodeIP", _decode_str, "")
    node_name: str = _opt("nodeName", _decode_str, "")
    interval: timedelta = _opt("interval", _decode_duration, factory=timedelta)
    sink: Sink = _opt("sink", _decode_struct(Sink), factory=Sink)
    control_plane: ControlPlane = _opt(
        "controlPlane", _decode_struct(ControlPlane), factory=ControlPlane
    )
    kubelet: Kubelet = _opt("kubelet", _decode_struct(Kubelet), factory=Kubelet)
    ksm: KSM = _opt("ksm", _decode_struct(KSM), factory=KSM)
    namespace_selector: NamespaceSelector | None = _opt(
        "namespaceSelector", _decode_optional(_decode_struct(NamespaceSelector)), None
    )


# --- loading --------------------------------------------------------------


def _defaults() -> dict[str, Any]:
    return {
        "clustername": "cluster",
        "verbose": False,
        "nodename": "node",
        "nodeip": "node",
        "sink": {
            "type": SINK_TYPE_HTTP,
            "http": {
                "port": 0,
                "timeout": DEFAULT_AGENT_TIMEOUT,
                "retries": DEFAULT_RETRIES,
                "probetimeout": DEFAULT_PROBE_TIMEOUT,
                "probebackoff": DEFAULT_PROBE_BACKOFF,
            },
        },
        "kubelet": {
            "networkroutefile": DEFAULT_NETWORK_ROUTE_FILE,
            "timeout": DEFAULT_TIMEOUT,
            "retries": DEFAULT_RETRIES,
            "scrapermaxreruns": DEFAULT_SCRAPER_MAX_RERUNS,
        },
        "controlplane": {
            "timeout": DEFAULT_TIMEOUT,
            "retries": DEFAULT_RETRIES,
        },
        "ksm": {
            "timeout": DEFAULT_TIMEOUT,
            "retries": DEFAULT_RETRIES,
            "discovery": {
                "backoffdelay": timedelta(seconds=7),
                "timeout": timedelta(seconds=60),
            },
        },
    }


def _lower_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k).lower(): _lower_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_lower_keys(item) for item in value]
    return value


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


def _leaf_paths(tree: dict[str, Any], prefix: tuple[str, ...] = ()):
    for key, value in tree.items():
        path = prefix + (key,)
        if isinstance(value, dict) and value:
            yield from _leaf_paths(value, path)
        else:
            yield path


def _apply_env(tree: dict[str, Any]) -> None:
    for path in list(_leaf_paths(tree)):
        name = "_".join((ENV_PREFIX,) + path).upper()
        value = os.environ.get(name)
        if not value:
            continue
        node = tree
        for key in path[:-1]:
            node = node[key]
        node[path[-1]] = value


def _find_config_file(search_paths: list[str], file_name: str) -> str:
    for directory in search_paths:
        for extension in _CONFIG_EXTENSIONS:
            candidate = os.path.join(directory, f"{file_name}.{extension}")
            if os.path.isfile(candidate):
                return candidate
    raise ConfigError(f'Config File "{file_name}" Not Found in {search_paths}')


def _read_config_file(path: str) -> dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as handle:
            if path.endswith(".json"):
                data = json.load(handle)
            else:
                data = yaml.safe_load(handle)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        raise ConfigError(f"While parsing config: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"While parsing config: {path} does not hold a mapping")
    return data


def check_namespace_selector_config(config: Config) -> None:
    """Raise if a namespace selector holds a label or expression value that is not a string."""
    selector = config.namespace_selector
    if selector is None:
        return
    for value in (selector.match_labels or {}).values():
        if not isinstance(value, str):
            raise InvalidMatchLabelsValueError(
                f"invalid matchLabels value: {_go_value(value)}, type {_go_type(value)}"
            )
    for expression in selector.match_expressions or []:
        for value in expression.values:
            if not isinstance(value, str):
                raise InvalidMatchExpressionsValueError(
                    f"invalid matchExpressions value: {_go_value(value)}, "
                    f"type {_go_type(value)}"
                )


def load_config(file_path: str, file_name: str) -> Config:
    """Load the configuration named file_name from file_path or the working directory.

    Defaults are applied first, then the file, then NRI_KUBERNETES_* environment variables.
    """
    path = _find_config_file([str(file_path), "."], file_name)
    settings = copy.deepcopy(_defaults())
    _merge(settings, _lower_keys(_read_config_file(path)))
    _apply_env(settings)

    config = _decode_struct(Config)(settings, "")
    check_namespace_selector_config(config)
    return config