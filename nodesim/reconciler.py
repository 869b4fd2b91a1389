from __future__ import annotations

from dataclasses import dataclass, field
from threading import Event as CancelEvent
from threading import Thread
from typing import Any, Callable, Mapping

from . import db, events
from .events import Event, EventSink
from .kube_ops import ClusterError, NotFound
from .resources import FINALIZER, MANAGED_NODES, NodeSelector, NodeSimulator, node_index
from .runtime import PassSummary, RuntimeState
from .settings import settings
from .sync import SyncEngine, SyncReport
from .template import NodeTemplate, build_template


class ReconcileError(Exception):
    """The pass could not read the cluster state; retry it later."""


@dataclass
class ReconcileResult:
    namespace: str
    name: str
    phase: str  # gone|active|terminating
    report: SyncReport = field(default_factory=SyncReport)
    requeue: bool = False

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"


class Reconciler:
    """Converges the fake nodes of one NodeSimulator per call."""

    def __init__(
        self,
        client: Any,
        sink: EventSink | None = None,
        selector: NodeSelector = MANAGED_NODES,
        template_builder: Callable[[Mapping[str, Any]], NodeTemplate] = build_template,
        workers: int = settings.sync_workers,
        block_on_cleanup_failure: bool = settings.block_finalizer_on_cleanup_failure,
    ):
        self.client = client
        self.sink = sink or EventSink()
        self.selector = selector
        self.block_on_cleanup_failure = block_on_cleanup_failure
        self.sync = SyncEngine(client, sink=self.sink, selector=selector, template_builder=template_builder, workers=workers)

    def reconcile(self, namespace: str, name: str, cancel: CancelEvent | None = None) -> ReconcileResult:
        key = f"{namespace}/{name}"
        try:
            sim = NodeSimulator.from_object(self.client.get_simulator(namespace, name))
        except NotFound:
            return ReconcileResult(namespace, name, phase="gone")
        except ClusterError as e:
            raise ReconcileError(f"Get NodeSimulator {key} failed: {e}") from e

        try:
            observed = self.client.list_nodes(self.selector.labels_for(namespace, name))
        except ClusterError as e:
            raise ReconcileError(f"List nodes of {key} failed: {e}") from e

        # A terminating object cannot gain finalizers.
        if not sim.has_finalizer() and not sim.terminating:
            sim = self._add_finalizer(sim)
            if sim is None:
                return ReconcileResult(namespace, name, phase="gone")

        if sim.terminating:
            return self._cleanup(sim, observed, cancel)

        report = SyncReport()
        desired = max(sim.number, 0)
        indices = [node_index(namespace, name, n["metadata"]["name"]) for n in observed]
        beyond = any(i is not None and i >= desired for i in indices)
        if (len(observed) > desired or beyond) and not _cancelled(cancel):
            upper = max([len(observed)] + [i + 1 for i in indices if i is not None])
            report.merge(self._scale_down(sim, desired, upper))

        if not _cancelled(cancel):
            report.merge(self.sync.sync(sim, cancel))

        return ReconcileResult(namespace, name, phase="active", report=report, requeue=report.failed > 0)

    def _add_finalizer(self, sim: NodeSimulator) -> NodeSimulator | None:
        """Add our finalizer and re-read the object; None when it is gone."""
        sim.add_finalizer(FINALIZER)
        try:
            self.client.update_simulator(sim.to_object())
            self._emit(events.FINALIZER_ADD, "INFO", f"Added finalizer {FINALIZER}", sim)
        except NotFound:
            return None
        except ClusterError as e:
            self._emit(events.ERROR, "ERROR", f"Set finalizer failed: {e}", sim)

        try:
            return NodeSimulator.from_object(self.client.get_simulator(sim.namespace, sim.name))
        except NotFound:
            return None
        except ClusterError as e:
            self._emit(events.ERROR, "WARN", f"Re-read after finalizer update failed: {e}", sim)
            return sim

    def _cleanup(self, sim: NodeSimulator, observed: list[dict[str, Any]], cancel: CancelEvent | None) -> ReconcileResult:
        report = SyncReport()
        for node in observed:
            if _cancelled(cancel):
                return ReconcileResult(sim.namespace, sim.name, phase="terminating", report=report, requeue=True)
            node_name = node["metadata"]["name"]
            if self._delete_node(sim, node_name):
                report.deleted += 1
            else:
                report.failed += 1

        if report.failed and self.block_on_cleanup_failure:
            self._emit(events.ERROR, "WARN", f"Keeping finalizer, {report.failed} node(s) not deleted", sim)
            return ReconcileResult(sim.namespace, sim.name, phase="terminating", report=report, requeue=True)

        if not sim.has_finalizer():
            return ReconcileResult(sim.namespace, sim.name, phase="terminating", report=report)

        sim.remove_finalizer(FINALIZER)
        requeue = False
        try:
            self.client.update_simulator(sim.to_object())
            self._emit(events.FINALIZER_REMOVE, "INFO", f"Removed finalizer {FINALIZER}", sim)
        except NotFound:
            pass
        except ClusterError as e:
            requeue = True
            self._emit(events.ERROR, "ERROR", f"Remove finalizer failed: {e}", sim)
        return ReconcileResult(sim.namespace, sim.name, phase="terminating", report=report, requeue=requeue)

    def _scale_down(self, sim: NodeSimulator, desired: int, upper: int) -> SyncReport:
        """Delete indices ``desired .. upper-1``, addressed by deterministic name."""
        report = SyncReport()
        for i in range(desired, upper):
            if self._delete_node(sim, sim.node_name(i)):
                report.deleted += 1
            else:
                report.failed += 1
        return report

    def _delete_node(self, sim: NodeSimulator, node_name: str) -> bool:
        try:
            self.client.delete_node(node_name)
        except NotFound:
            return True
        except ClusterError as e:
            self._emit(events.ERROR, "ERROR", f"Delete node failed: {e}", sim, node=node_name)
            return False
        self._emit(events.DELETE, "INFO", "Deleted node", sim, node=node_name)
        return True

    def _emit(self, kind: str, level: str, message: str, sim: NodeSimulator, node: str | None = None) -> None:
        self.sink.emit(Event(kind, level, message, simulator=sim.key, node=node))


def _cancelled(cancel: CancelEvent | None) -> bool:
    return cancel is not None and cancel.is_set()


def summarize(result: ReconcileResult, attempts: int = 1) -> PassSummary:
    r = result.report
    return PassSummary(
        simulator=result.key,
        phase=result.phase,
        created=r.created,
        patched=r.patched,
        deleted=r.deleted,
        failed=r.failed,
        skipped=r.skipped,
        aborted=r.aborted,
        requeue=result.requeue,
        attempts=attempts,
    )


class Controller:
    """Periodically resyncs every NodeSimulator (level-triggered)."""

    def __init__(
        self,
        reconciler: Reconciler,
        runtime: RuntimeState,
        poll_interval_s: int = settings.poll_interval_s,
        max_retries: int = settings.max_retries,
        retry_backoff_s: float = settings.retry_backoff_s,
        namespace: str | None = settings.watch_namespace,
    ):
        self.reconciler = reconciler
        self.runtime = runtime
        self.poll_interval_s = max(1, int(poll_interval_s))
        self.max_retries = max(0, int(max_retries))
        self.retry_backoff_s = max(0.0, float(retry_backoff_s))
        self.namespace = namespace
        self._stop = CancelEvent()
        self._thr: Thread | None = None

    def start(self) -> None:
        if self._thr and self._thr.is_alive():
            return
        self._stop.clear()
        self._thr = Thread(target=self._loop, daemon=True)
        self._thr.start()

    def stop(self) -> None:
        self._stop.set()

    def _loop(self) -> None:
        db.log_event("INFO", "Controller started", kind="controller")
        while not self._stop.is_set():
            try:
                self._tick()
            except Exception as e:
                db.log_event("ERROR", f"Controller tick failed: {type(e).__name__}: {e}", kind="controller")
            self._stop.wait(self.poll_interval_s)

    def _tick(self) -> None:
        for obj in self.reconciler.client.list_simulators(self.namespace):
            if self._stop.is_set():
                return
            meta = obj.get("metadata") or {}
            self.reconcile_key(meta.get("namespace") or "", meta["name"])

    def reconcile_key(self, namespace: str, name: str) -> PassSummary:
        """Run one pass, retrying up to ``max_retries`` times while it asks for it."""
        key = f"{namespace}/{name}"
        attempts = 0
        while True:
            attempts += 1
            try:
                result = self.reconciler.reconcile(namespace, name, cancel=self._stop)
                summary = summarize(result, attempts)
            except ReconcileError as e:
                summary = PassSummary(simulator=key, phase="error", requeue=True, attempts=attempts, error=str(e))
            if not summary.requeue or attempts > self.max_retries or self._stop.is_set():
                break
            self._stop.wait(self.retry_backoff_s * attempts)

        if summary.requeue:
            summary.retries = self.runtime.bump_retry(key)
        else:
            self.runtime.reset_retry(key)
        self.runtime.record_pass(summary)
        db.record_report(summary.as_dict())
        return summary
