import pytest

from k8sinfra.endpoints import (
    DiscoveryTimeoutError,
    EndpointsDiscoverer,
    EndpointsDiscovererWithTimeout,
    EndpointsDiscoveryConfig,
)
from k8sinfra.kube import Cluster, EndpointAddress, EndpointPort, EndpointSubset, Endpoints, ObjectMeta


def make_endpoints(namespace, ip, port):
    return Endpoints(
        ObjectMeta(name="test", namespace=namespace, labels={"selector": "matching"}),
        subsets=[EndpointSubset([EndpointAddress(ip)], [EndpointPort(port)])],
    )


def test_creation_fails_without_client():
    with pytest.raises(ValueError):
        EndpointsDiscoverer(EndpointsDiscoveryConfig())


@pytest.mark.parametrize(
    "changes,expected",
    [
        ({"label_selector": "not-matching"}, []),
        ({"label_selector": "selector=matching"}, ["1.2.3.4:80", "5.6.7.8:81"]),
        ({}, ["1.2.3.4:80", "5.6.7.8:81"]),
        ({"namespace": "different-namespace"}, []),
        ({"namespace": "testNamespace2"}, ["5.6.7.8:81"]),
        ({"port": 1000}, []),
        ({"port": 81}, ["5.6.7.8:81"]),
    ],
)
def test_endpoints_discovery_with(changes, expected):
    client = Cluster(
        make_endpoints("testNamespace", "1.2.3.4", 80),
        make_endpoints("testNamespace2", "5.6.7.8", 81),
    )
    discoverer = EndpointsDiscoverer(EndpointsDiscoveryConfig(client=client, **changes))
    assert discoverer.discover() == expected
    discoverer.close()


class FakeDiscoverer:
    def __init__(self, func):
        self.func = func

    def discover(self):
        return self.func()


def succeed_after(attempts):
    state = {"current": 0}

    def discover():
        if state["current"] >= attempts:
            return ["success"]
        state["current"] += 1
        return []

    return FakeDiscoverer(discover)


def test_forwards_errors():
    inner_error = RuntimeError("inner error")

    def fail():
        raise inner_error

    timeouter = EndpointsDiscovererWithTimeout(FakeDiscoverer(fail), 0, 1)
    with pytest.raises(RuntimeError) as info:
        timeouter.discover()
    assert info.value is inner_error


def test_forwards_endpoints():
    timeouter = EndpointsDiscovererWithTimeout(FakeDiscoverer(lambda: ["foobar"]), 0, 1)
    assert timeouter.discover() == ["foobar"]


def test_returns_at_once():
    assert EndpointsDiscovererWithTimeout(succeed_after(0), 0, 2).discover() == ["success"]


def test_returns_within_threshold():
    timeouter = EndpointsDiscovererWithTimeout(succeed_after(3), 0.05, 2)
    assert timeouter.discover() == ["success"]


def test_fails_not_in_threshold():
    timeouter = EndpointsDiscovererWithTimeout(succeed_after(3), 0.2, 0.3)
    with pytest.raises(DiscoveryTimeoutError):
        timeouter.discover()