import threading
from itertools import islice

from cuescore.subscriptions import Subscription, subscribe


def _sequence(*values):
    state = {"i": 0}

    def query():
        value = values[min(state["i"], len(values) - 1)]
        state["i"] += 1
        return value

    return query


def test_only_changed_snapshots_are_delivered():
    sub = Subscription(_sequence(1, 1, 2, 2, 2, 3), interval=0)
    assert list(islice(sub, 3)) == [1, 2, 3]


def test_first_snapshot_delivered_even_if_falsy():
    sub = subscribe(_sequence([], [], ["x"]), interval=0)
    assert list(islice(sub, 2)) == [[], ["x"]]


def test_close_stops_delivery():
    sub = Subscription(_sequence(1, 2, 3), interval=0)
    stream = iter(sub)
    assert next(stream) == 1
    sub.close()
    assert list(stream) == []
    assert list(sub) == []


def test_close_from_another_thread_wakes_waiting_iterator():
    sub = Subscription(lambda: "same", interval=60)
    received = []

    def consume():
        for snapshot in sub:
            received.append(snapshot)

    worker = threading.Thread(target=consume)
    worker.start()
    while not received:
        pass
    sub.close()
    worker.join(timeout=5)
    assert not worker.is_alive()
    assert received == ["same"]


def test_context_manager_closes():
    with Subscription(lambda: 1, interval=0) as sub:
        assert next(iter(sub)) == 1
    assert sub.closed
