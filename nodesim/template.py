from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Mapping

from pydantic import ValidationError

from .api_models import NodeSimulatorSpec

FAKE_NODE_ANNOTATION = "node.kubernetes.io/fake"
NODE_TYPE_LABEL = "type"
NODE_TYPE_VALUE = "virtual-node"
HOSTNAME_LABEL = "kubernetes.io/hostname"
GPU_RESOURCE = "nvidia.com/gpu"

NODE_CONDITIONS = (
    ("Ready", "True", "KubeletReady", "kubelet is posting ready status"),
    ("MemoryPressure", "False", "KubeletHasSufficientMemory", "kubelet has sufficient memory available"),
    ("DiskPressure", "False", "KubeletHasNoDiskPressure", "kubelet has no disk pressure"),
    ("PIDPressure", "False", "KubeletHasSufficientPID", "kubelet has sufficient PID available"),
    ("NetworkUnavailable", "False", "RouteCreated", "node network is configured"),
)


class TemplateError(Exception):
    pass


@dataclass(frozen=True)
class NodeTemplate:
    """A fully formed fake Node, minus its name and ownership labels.

    Never handed out directly: :meth:`materialize` returns an independent copy
    per node so no two nodes share mutable state.
    """

    labels: Mapping[str, str] = field(default_factory=dict)
    annotations: Mapping[str, str] = field(default_factory=dict)
    spec: Mapping[str, Any] = field(default_factory=dict)
    status: Mapping[str, Any] = field(default_factory=dict)

    def materialize(self, name: str, labels: Mapping[str, str] | None = None) -> dict[str, Any]:
        node_labels = dict(copy.deepcopy(self.labels))
        node_labels.update(labels or {})
        node_labels[HOSTNAME_LABEL] = name
        return {
            "apiVersion": "v1",
            "kind": "Node",
            "metadata": {
                "name": name,
                "labels": node_labels,
                "annotations": dict(copy.deepcopy(self.annotations)),
            },
            "spec": copy.deepcopy(dict(self.spec)),
            "status": copy.deepcopy(dict(self.status)),
        }


def _conditions() -> list[dict[str, str]]:
    return [
        {"type": t, "status": s, "reason": reason, "message": msg}
        for t, s, reason, msg in NODE_CONDITIONS
    ]


def build_template(spec: Mapping[str, Any]) -> NodeTemplate:
    """Render the fake Node shared by every index of one NodeSimulator."""
    try:
        parsed = NodeSimulatorSpec.model_validate(dict(spec))
    except ValidationError as e:
        raise TemplateError(f"Invalid NodeSimulator spec: {e}") from e

    resources: dict[str, str] = {
        "cpu": parsed.cpu,
        "memory": parsed.memory,
        "pods": str(parsed.pods),
    }
    if parsed.gpu:
        resources[GPU_RESOURCE] = str(parsed.gpu)

    node_spec: dict[str, Any] = {
        "taints": [t.model_dump() for t in parsed.taints],
    }
    if parsed.pod_cidr:
        node_spec["podCIDR"] = parsed.pod_cidr
        node_spec["podCIDRs"] = [parsed.pod_cidr]

    labels = {NODE_TYPE_LABEL: NODE_TYPE_VALUE}
    labels.update(parsed.labels)

    status = {
        "capacity": resources,
        "allocatable": dict(resources),
        "conditions": _conditions(),
        "nodeInfo": {
            "kubeletVersion": parsed.kubelet_version,
            "kubeProxyVersion": parsed.kubelet_version,
            "operatingSystem": "linux",
            "architecture": "amd64",
        },
        "phase": "Running",
    }
    return NodeTemplate(
        labels=labels,
        annotations={FAKE_NODE_ANNOTATION: "true"},
        spec=node_spec,
        status=status,
    )
