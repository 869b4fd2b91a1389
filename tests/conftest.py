from __future__ import annotations

import copy
import time
from threading import Lock

import pytest

from nodesim import db
from nodesim.events import EventSink
from nodesim.kube_ops import AlreadyExists, ClusterError, NotFound
from nodesim.settings import Settings


class RecordingSink(EventSink):
    def __init__(self) -> None:
        self.lock = Lock()
        self.events = []

    def emit(self, event) -> None:
        with self.lock:
            self.events.append(event)

    def kinds(self) -> list[str]:
        with self.lock:
            return [e.kind for e in self.events]


class FakeCluster:
    """In-memory stand-in for KubeClusterClient.

    ``fail[(op, name)] = exc`` makes that call raise. ``delay`` slows down
    every node call so concurrency can be observed.
    """

    def __init__(self, delay: float = 0.0) -> None:
        self.lock = Lock()
        self.simulators: dict[tuple[str, str], dict] = {}
        self.nodes: dict[str, dict] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail: dict[tuple[str, str], Exception] = {}
        self.delay = delay
        self.active = 0
        self.max_active = 0

    def _call(self, op: str, name: str) -> None:
        with self.lock:
            self.calls.append((op, name))
            exc = self.fail.get((op, name))
        if exc is not None:
            raise exc

    def _node_call(self, op: str, name: str) -> None:
        with self.lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            self._call(op, name)
        finally:
            with self.lock:
                self.active -= 1

    def ops(self, op: str) -> list[str]:
        with self.lock:
            return [name for o, name in self.calls if o == op]

    # NodeSimulator objects

    def add_simulator(self, namespace: str, name: str, number: int, finalizers=None, **spec) -> dict:
        obj = {
            "apiVersion": "sim.k8s.io/v1",
            "kind": "NodeSimulator",
            "metadata": {"namespace": namespace, "name": name, "finalizers": list(finalizers or [])},
            "spec": dict(spec, number=number),
        }
        self.simulators[(namespace, name)] = obj
        return obj

    def set_number(self, namespace: str, name: str, number: int) -> None:
        self.simulators[(namespace, name)]["spec"]["number"] = number

    def request_deletion(self, namespace: str, name: str) -> None:
        self.simulators[(namespace, name)]["metadata"]["deletionTimestamp"] = "2026-10-19T00:00:00Z"

    def get_simulator(self, namespace: str, name: str) -> dict:
        self._call("get_simulator", f"{namespace}/{name}")
        obj = self.simulators.get((namespace, name))
        if obj is None:
            raise NotFound(f"nodesimulator {namespace}/{name} not found", status=404)
        return copy.deepcopy(obj)

    def update_simulator(self, obj: dict) -> dict:
        meta = obj["metadata"]
        key = (meta["namespace"], meta["name"])
        self._call("update_simulator", f"{key[0]}/{key[1]}")
        if key not in self.simulators:
            raise NotFound("gone", status=404)
        if meta.get("deletionTimestamp") and not meta.get("finalizers"):
            # The API server removes the object once its last finalizer is gone.
            del self.simulators[key]
            return copy.deepcopy(obj)
        self.simulators[key] = copy.deepcopy(obj)
        return copy.deepcopy(obj)

    def list_simulators(self, namespace=None) -> list[dict]:
        return [copy.deepcopy(o) for (ns, _), o in sorted(self.simulators.items()) if namespace in (None, ns)]

    # Nodes

    def seed_nodes(self, namespace: str, name: str, count: int) -> None:
        for i in range(count):
            node_name = f"{namespace}-{name}-{i}"
            self.nodes[node_name] = {
                "metadata": {
                    "name": node_name,
                    "labels": {"sim.k8s.io/managed": "true", "sim.k8s.io/owner": f"{namespace}-{name}"},
                },
                "spec": {},
                "status": {},
            }

    def list_nodes(self, labels) -> list[dict]:
        self._call("list_nodes", ",".join(f"{k}={v}" for k, v in sorted(labels.items())))
        with self.lock:
            return [
                copy.deepcopy(n)
                for _, n in sorted(self.nodes.items())
                if all(n["metadata"].get("labels", {}).get(k) == v for k, v in labels.items())
            ]

    def get_node(self, name: str) -> dict:
        self._node_call("get_node", name)
        with self.lock:
            node = self.nodes.get(name)
        if node is None:
            raise NotFound(f"node {name} not found", status=404)
        return copy.deepcopy(node)

    def create_node(self, node: dict) -> dict:
        name = node["metadata"]["name"]
        self._node_call("create_node", name)
        with self.lock:
            if name in self.nodes:
                raise AlreadyExists(f"node {name} exists", status=409, reason="AlreadyExists")
            self.nodes[name] = copy.deepcopy(node)
        return copy.deepcopy(node)

    def patch_node(self, name: str, path: str, value) -> dict:
        self._node_call(f"patch_node{path}", name)
        with self.lock:
            if name not in self.nodes:
                raise NotFound(f"node {name} not found", status=404)
            self.nodes[name][path.lstrip("/")] = copy.deepcopy(value)
            return copy.deepcopy(self.nodes[name])

    def delete_node(self, name: str) -> None:
        self._node_call("delete_node", name)
        with self.lock:
            if name not in self.nodes:
                raise NotFound(f"node {name} not found", status=404)
            del self.nodes[name]


@pytest.fixture
def cluster():
    return FakeCluster()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def isolated_db(tmp_path, monkeypatch):
    """Point the sqlite store at a per-test file."""
    monkeypatch.setattr(db, "settings", Settings(db_path=str(tmp_path / "nodesim.db")))
    db.init_db()
    return tmp_path / "nodesim.db"


def server_error(what: str) -> ClusterError:
    return ClusterError(f"{what}: HTTP 500", status=500)
