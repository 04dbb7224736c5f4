import time

import pytest

from k8sinfra.storer import InMemoryStore, NotFoundError

TEST_VALUE = 5.0
TEST_NEW_VALUE = 15.0
TEST_KEY = "testKey"


def test_set_then_get_and_overwrite_then_collected():
    with InMemoryStore(0.2, 0.6) as cache:
        cache.set(TEST_KEY, TEST_VALUE)
        _, value = cache.get(TEST_KEY, float)
        assert value == TEST_VALUE

        cache.set(TEST_KEY, TEST_NEW_VALUE)
        _, value = cache.get(TEST_KEY, float)
        assert value == TEST_NEW_VALUE

        time.sleep(0.9)
        with pytest.raises(NotFoundError):
            cache.get(TEST_KEY, float)


def test_after_interval_but_within_ttl_is_kept():
    with InMemoryStore(50, 0.1) as cache:
        cache.set(TEST_KEY, TEST_VALUE)
        time.sleep(0.35)
        _, value = cache.get(TEST_KEY, float)
        assert value == TEST_VALUE


def test_set_returns_timestamp_returned_by_get():
    with InMemoryStore(50, 1) as cache:
        before = int(time.time())
        stamp = cache.set(TEST_KEY, TEST_VALUE)
        after = int(time.time())
        assert before <= stamp <= after
        timestamp, _ = cache.get(TEST_KEY, float)
        assert timestamp == stamp


@pytest.mark.parametrize("destination", [None, TEST_KEY])
def test_fails_if_destination_is_not_a_type(destination):
    with InMemoryStore(50, 1) as cache:
        cache.set(TEST_KEY, TEST_VALUE)
        with pytest.raises(TypeError):
            cache.get(TEST_KEY, destination)


def test_fails_if_types_differ():
    with InMemoryStore(50, 1) as cache:
        cache.set(TEST_KEY, TEST_VALUE)
        with pytest.raises(TypeError):
            cache.get(TEST_KEY, str)


def test_miss_raises_not_found():
    with InMemoryStore(50, 1) as cache:
        with pytest.raises(NotFoundError):
            cache.get(TEST_KEY, float)


def test_cleans_itself_periodically():
    with InMemoryStore(0.001, 0.05) as cache:
        for _ in range(3):
            cache.set(TEST_KEY, TEST_VALUE)
            time.sleep(0.2)
            with pytest.raises(NotFoundError):
                cache.get(TEST_KEY, float)


def test_does_not_delete_old_entries_if_stopped():
    cache = InMemoryStore(0.001, 0.05)
    cache.stop_vacuum()
    for _ in range(3):
        cache.set(TEST_KEY, TEST_VALUE)
        time.sleep(0.2)
        _, value = cache.get(TEST_KEY, float)
        assert value == TEST_VALUE


def test_delete_and_save_leave_entries_in_place():
    with InMemoryStore(50, 1) as cache:
        cache.set(TEST_KEY, TEST_VALUE)
        cache.delete(TEST_KEY)
        cache.save()
        assert cache.get(TEST_KEY, float)[1] == TEST_VALUE