import pytest

from k8sinfra.kube import Cluster, Node, NotFoundError, ObjectMeta, Pod, Secret, Service
from k8sinfra.labels import everything, selector_from_set
from k8sinfra.listers import (
    new_namespace_pod_listerer,
    new_namespace_secret_listerer,
    new_node_lister,
    new_services_lister,
)

TEST_NAMESPACE = "testNamespace"
POD_NAME = "testPod"
MULTI_LABELS = {"foo": "matching", "bar": "matching"}
LABELS = {"baz": "matching"}
SECRET_NAME = "name"
SECRET_NAMESPACE = "namespace"
DIFFERENT_NAMESPACE = "abcd"


def fake_node():
    return Node(ObjectMeta(name="name"))


def pod_unique():
    return Pod(ObjectMeta(name=POD_NAME, namespace=TEST_NAMESPACE, labels=dict(LABELS)))


def pod_multi():
    return Pod(ObjectMeta(name="podMultiLabel", namespace=TEST_NAMESPACE, labels=dict(MULTI_LABELS)))


def pod_none():
    return Pod(ObjectMeta(name="podNoSelector", namespace=TEST_NAMESPACE))


def fake_secret(namespace):
    return Secret(
        ObjectMeta(name=SECRET_NAME, namespace=namespace), data={"testData": b"testData"}
    )


def test_nodes_discovery():
    client = Cluster()
    lister = new_node_lister(client)
    with pytest.raises(NotFoundError):
        lister.get("name")
    client.create(fake_node())
    assert lister.get("name") == fake_node()
    client.delete("Node", "name")
    with pytest.raises(NotFoundError):
        lister.get("name")
    lister.close()


def test_nodes_stop_channel():
    client = Cluster()
    lister = new_node_lister(client)
    lister.close()
    client.create(fake_node())
    with pytest.raises(NotFoundError):
        lister.get("name")


@pytest.mark.parametrize(
    "namespace,selector,expected",
    [
        ("", selector_from_set(LABELS), [pod_unique()]),
        (TEST_NAMESPACE, selector_from_set(LABELS), [pod_unique()]),
        ("", selector_from_set(MULTI_LABELS), [pod_multi()]),
        (TEST_NAMESPACE, selector_from_set({"foo": "matching"}), [pod_multi()]),
        ("not-matching", selector_from_set(LABELS), []),
        (TEST_NAMESPACE, selector_from_set({"not-matching": "label"}), []),
        (TEST_NAMESPACE, selector_from_set({"baz": "matching", "not-matching": "label"}), []),
    ],
)
def test_pods_lister_returns(namespace, selector, expected):
    client = Cluster()
    for p in (pod_unique(), pod_multi(), pod_none()):
        client.create(p)
    listerer = new_namespace_pod_listerer([namespace], client)
    lister = listerer.lister(namespace)
    assert lister is not None
    assert lister.list(selector) == expected
    listerer.close()


def test_pod_multi_namespace_discovery():
    foo = {"foo": "matching"}
    client = Cluster(pod_unique(), Pod(ObjectMeta(name="foo", namespace="differentNamespace", labels=foo)))
    listerer = new_namespace_pod_listerer([TEST_NAMESPACE, "differentNamespace"], client)
    assert len(listerer.lister(TEST_NAMESPACE).list(selector_from_set(LABELS))) == 1
    assert len(listerer.lister("differentNamespace").list(selector_from_set(foo))) == 1
    assert listerer.lister("missing") is None
    listerer.close()


def test_pods_lister_updates():
    client = Cluster()
    listerer = new_namespace_pod_listerer([TEST_NAMESPACE], client)
    lister = listerer.lister(TEST_NAMESPACE)
    assert lister.list(everything()) == []
    client.create(pod_unique())
    assert len(lister.list(everything())) == 1
    client.delete("Pod", POD_NAME, TEST_NAMESPACE)
    assert lister.list(everything()) == []
    listerer.close()


def test_pods_lister_stop_channel():
    client = Cluster()
    listerer = new_namespace_pod_listerer([TEST_NAMESPACE], client)
    listerer.close()
    client.create(pod_unique())
    assert listerer.lister(TEST_NAMESPACE).list(everything()) == []


def test_secrets_discovery():
    client = Cluster()
    listerer = new_namespace_secret_listerer([SECRET_NAMESPACE], client)
    lister = listerer.lister(SECRET_NAMESPACE)
    with pytest.raises(NotFoundError):
        lister.get(SECRET_NAME)
    client.create(fake_secret(SECRET_NAMESPACE))
    assert lister.get(SECRET_NAME) == fake_secret(SECRET_NAMESPACE)
    client.delete("Secret", SECRET_NAME, SECRET_NAMESPACE)
    with pytest.raises(NotFoundError):
        lister.get(SECRET_NAME)
    listerer.close()


def test_secrets_multi_namespace_discovery():
    client = Cluster(fake_secret(SECRET_NAMESPACE), fake_secret(DIFFERENT_NAMESPACE))
    listerer = new_namespace_secret_listerer([SECRET_NAMESPACE, DIFFERENT_NAMESPACE], client)
    assert listerer.lister(SECRET_NAMESPACE).get(SECRET_NAME).metadata.name == SECRET_NAME
    assert listerer.lister(DIFFERENT_NAMESPACE).get(SECRET_NAME).metadata.name == SECRET_NAME


def test_secrets_ignores_different_namespaces():
    client = Cluster(Secret(ObjectMeta(name=SECRET_NAME, namespace=DIFFERENT_NAMESPACE)))
    listerer = new_namespace_secret_listerer([SECRET_NAMESPACE], client)
    with pytest.raises(NotFoundError):
        listerer.lister(SECRET_NAMESPACE).get(SECRET_NAME)


def test_secrets_stop_channel():
    client = Cluster()
    listerer = new_namespace_secret_listerer([SECRET_NAMESPACE, DIFFERENT_NAMESPACE], client)
    first = listerer.lister(SECRET_NAMESPACE)
    second = listerer.lister(DIFFERENT_NAMESPACE)
    listerer.close()
    client.create(fake_secret(SECRET_NAMESPACE))
    client.create(fake_secret(DIFFERENT_NAMESPACE))
    with pytest.raises(NotFoundError):
        first.get(SECRET_NAME)
    with pytest.raises(NotFoundError):
        second.get(SECRET_NAME)


def test_informer_does_not_hit_multiple_times_backend():
    client = Cluster(fake_secret(SECRET_NAMESPACE))
    listerer = new_namespace_secret_listerer([SECRET_NAMESPACE], client)
    lister = listerer.lister(SECRET_NAMESPACE)
    for _ in range(4):
        assert lister.get(SECRET_NAME).metadata.name == SECRET_NAME
    verbs = [a.verb for a in client.actions()]
    assert verbs.count("list") == 1
    assert verbs.count("get") == 0


def test_services_discovery():
    client = Cluster()
    lister = new_services_lister(client)
    assert lister.list(everything()) == []
    service = Service(ObjectMeta(name="test"))
    client.create(service)
    assert lister.list(everything()) == [service]
    client.delete("Service", "test")
    assert lister.list(everything()) == []