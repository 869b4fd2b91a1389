import time
from threading import Event, Lock

from nodesim.dispatcher import parallelize


def test_runs_every_item_and_waits():
    results = parallelize(3, list(range(10)), lambda x: x * 2)
    assert sorted(r.value for r in results) == [x * 2 for x in range(10)]
    assert all(r.ok for r in results)


def test_empty_batch():
    assert parallelize(5, [], lambda x: x) == []


def test_concurrency_never_exceeds_bound():
    lock = Lock()
    state = {"active": 0, "max": 0}

    def work(_):
        with lock:
            state["active"] += 1
            state["max"] = max(state["max"], state["active"])
        time.sleep(0.01)
        with lock:
            state["active"] -= 1

    parallelize(5, list(range(20)), work)
    assert 1 <= state["max"] <= 5


def test_failure_is_isolated_and_reported():
    seen = []

    def work(x):
        if x == 3:
            raise ValueError("bad item")
        return x

    results = parallelize(4, list(range(6)), work, on_error=lambda item, exc: seen.append((item, str(exc))))

    assert len(results) == 6
    failed = [r for r in results if not r.ok]
    assert [r.item for r in failed] == [3]
    assert isinstance(failed[0].error, ValueError)
    assert seen == [(3, "bad item")]


def test_cancelled_items_are_skipped():
    cancel = Event()
    cancel.set()
    calls = []

    results = parallelize(2, [1, 2, 3], calls.append, cancel=cancel)

    assert calls == []
    assert all(r.skipped for r in results)
