from conftest import server_error
from nodesim import events
from nodesim.kube_ops import AlreadyExists
from nodesim.resources import NodeSimulator
from nodesim.sync import SyncEngine, SyncReport
from nodesim.template import TemplateError


def _sim(cluster, number, **spec):
    return NodeSimulator.from_object(cluster.add_simulator("default", "sim1", number, **spec))


def test_invalid_template_aborts_without_touching_nodes(cluster, sink):
    sim = _sim(cluster, 3, cpu="lots")

    report = SyncEngine(cluster, sink=sink).sync(sim)

    assert report.aborted is True
    assert cluster.calls == []
    assert cluster.nodes == {}
    assert events.ABORT in sink.kinds()


def test_builder_failure_aborts(cluster, sink):
    def broken(spec):
        raise TemplateError("no template today")

    report = SyncEngine(cluster, sink=sink, template_builder=broken).sync(_sim(cluster, 2))

    assert report.aborted is True
    assert cluster.ops("get_node") == []


def test_non_positive_number_is_noop(cluster, sink):
    assert SyncEngine(cluster, sink=sink).sync(_sim(cluster, 0)) == SyncReport()
    assert cluster.ops("get_node") == []


def test_create_failure_is_isolated(cluster, sink):
    cluster.fail[("create_node", "default-sim1-1")] = server_error("create")

    report = SyncEngine(cluster, sink=sink).sync(_sim(cluster, 3))

    assert report.created == 2
    assert report.failed == 1
    assert sorted(cluster.nodes) == ["default-sim1-0", "default-sim1-2"]


def test_already_exists_race_is_skipped(cluster, sink):
    cluster.fail[("create_node", "default-sim1-0")] = AlreadyExists("exists", status=409, reason="AlreadyExists")

    report = SyncEngine(cluster, sink=sink).sync(_sim(cluster, 1))

    assert report.skipped == 1
    assert report.failed == 0


def test_spec_patch_failure_still_patches_status(cluster, sink):
    cluster.seed_nodes("default", "sim1", 1)
    cluster.fail[("patch_node/spec", "default-sim1-0")] = server_error("patch")

    report = SyncEngine(cluster, sink=sink).sync(_sim(cluster, 1))

    assert cluster.ops("patch_node/status") == ["default-sim1-0"]
    assert cluster.nodes["default-sim1-0"]["status"]["conditions"][0]["type"] == "Ready"
    assert report.failed == 1


def test_get_error_skips_write(cluster, sink):
    cluster.fail[("get_node", "default-sim1-0")] = server_error("get")

    report = SyncEngine(cluster, sink=sink).sync(_sim(cluster, 1))

    assert report.failed == 1
    assert cluster.ops("create_node") == []
    assert cluster.ops("patch_node/spec") == []


def test_unexpected_exception_counts_as_failure(cluster, sink):
    cluster.fail[("get_node", "default-sim1-0")] = RuntimeError("boom")

    report = SyncEngine(cluster, sink=sink).sync(_sim(cluster, 2))

    assert report.failed == 1
    assert report.created == 1
    assert any(e.node == "default-sim1-0" and e.kind == events.ERROR for e in sink.events)


def test_report_merge():
    a = SyncReport(created=1, failed=1)
    a.merge(SyncReport(deleted=2, aborted=True))
    assert a.as_dict() == {
        "created": 1,
        "patched": 0,
        "deleted": 2,
        "failed": 1,
        "skipped": 0,
        "aborted": True,
    }
