from __future__ import annotations

from dataclasses import asdict, dataclass
from threading import Event as CancelEvent
from typing import Any, Callable, Mapping

from . import events
from .dispatcher import DEFAULT_WORKERS, parallelize
from .events import Event, EventSink
from .kube_ops import AlreadyExists, ClusterError, NotFound
from .resources import MANAGED_NODES, NodeSelector, NodeSimulator
from .template import NodeTemplate, TemplateError, build_template

CREATED = "created"
PATCHED = "patched"
FAILED = "failed"
SKIPPED = "skipped"


@dataclass
class SyncReport:
    """Outcome counts for one pass over a NodeSimulator's nodes."""

    created: int = 0
    patched: int = 0
    deleted: int = 0
    failed: int = 0
    skipped: int = 0
    aborted: bool = False

    def count(self, outcome: str) -> None:
        setattr(self, outcome, getattr(self, outcome) + 1)

    def merge(self, other: SyncReport) -> SyncReport:
        self.created += other.created
        self.patched += other.patched
        self.deleted += other.deleted
        self.failed += other.failed
        self.skipped += other.skipped
        self.aborted = self.aborted or other.aborted
        return self

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


class SyncEngine:
    """Creates or patches every node a NodeSimulator asks for."""

    def __init__(
        self,
        client: Any,
        sink: EventSink | None = None,
        selector: NodeSelector = MANAGED_NODES,
        template_builder: Callable[[Mapping[str, Any]], NodeTemplate] = build_template,
        workers: int = DEFAULT_WORKERS,
    ):
        self.client = client
        self.sink = sink or EventSink()
        self.selector = selector
        self.template_builder = template_builder
        self.workers = max(1, int(workers))

    def materialize(self, sim: NodeSimulator, template: NodeTemplate) -> list[dict[str, Any]]:
        labels = self.selector.labels_for(sim.namespace, sim.name)
        return [template.materialize(sim.node_name(i), labels) for i in range(sim.number)]

    def sync(self, sim: NodeSimulator, cancel: CancelEvent | None = None) -> SyncReport:
        report = SyncReport()
        if sim.number <= 0:
            return report

        try:
            template = self.template_builder(sim.spec)
        except (TemplateError, ValueError) as e:
            self.sink.emit(Event(events.ABORT, "ERROR", f"Sync aborted, no node touched: {e}", simulator=sim.key))
            report.aborted = True
            return report

        nodes = self.materialize(sim, template)

        def _on_error(node: dict[str, Any], exc: BaseException) -> None:
            self.sink.emit(
                Event(
                    events.ERROR,
                    "ERROR",
                    f"Sync crashed: {type(exc).__name__}: {exc}",
                    simulator=sim.key,
                    node=node["metadata"]["name"],
                )
            )

        results = parallelize(self.workers, nodes, lambda n: self.sync_node(sim, n), cancel=cancel, on_error=_on_error)
        for r in results:
            if r.skipped:
                report.count(SKIPPED)
            elif r.error is not None:
                report.count(FAILED)
            else:
                report.count(r.value)
        return report

    def sync_node(self, sim: NodeSimulator, node: dict[str, Any]) -> str:
        """Create ``node`` if it does not exist, otherwise replace its spec and status.

        Only ever runs once per node name per batch. Returns one of the
        outcome names counted by :class:`SyncReport`.
        """
        name = node["metadata"]["name"]
        try:
            self.client.get_node(name)
        except NotFound:
            return self._create(sim, node)
        except ClusterError as e:
            self._error(sim, name, f"Get node failed: {e}")
            return FAILED

        ok = True
        for path, value in (("/spec", node["spec"]), ("/status", node["status"])):
            try:
                self.client.patch_node(name, path, value)
            except ClusterError as e:
                ok = False
                self._error(sim, name, f"Patch {path} failed: {e}")
        if not ok:
            return FAILED
        self.sink.emit(Event(events.PATCH, "INFO", "Patched node spec and status", simulator=sim.key, node=name))
        return PATCHED

    def _create(self, sim: NodeSimulator, node: dict[str, Any]) -> str:
        name = node["metadata"]["name"]
        try:
            self.client.create_node(node)
        except AlreadyExists:
            # Created by an overlapping pass; the next pass patches it.
            self.sink.emit(Event(events.CREATE, "WARN", "Node already exists", simulator=sim.key, node=name))
            return SKIPPED
        except ClusterError as e:
            self._error(sim, name, f"Create node failed: {e}")
            return FAILED
        self.sink.emit(Event(events.CREATE, "INFO", "Created node", simulator=sim.key, node=name))
        return CREATED

    def _error(self, sim: NodeSimulator, name: str, message: str) -> None:
        self.sink.emit(Event(events.ERROR, "ERROR", message, simulator=sim.key, node=name))
