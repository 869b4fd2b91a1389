from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

GROUP = "sim.k8s.io"
VERSION = "v1"
PLURAL = "nodesimulators"

FINALIZER = "sim.k8s.io/NodeFinal"

MANAGE_LABEL_KEY = "sim.k8s.io/managed"
MANAGE_LABEL_VALUE = "true"
UNIQUE_LABEL_KEY = "sim.k8s.io/owner"


def owner_id(namespace: str, name: str) -> str:
    return f"{namespace}-{name}"


def node_name(namespace: str, name: str, index: int) -> str:
    """Deterministic name of the managed node at ``index``."""
    return f"{owner_id(namespace, name)}-{int(index)}"


def node_index(namespace: str, name: str, candidate: str) -> int | None:
    """Inverse of :func:`node_name`; None when ``candidate`` is not ours."""
    prefix = owner_id(namespace, name) + "-"
    if not candidate.startswith(prefix):
        return None
    suffix = candidate[len(prefix):]
    if not suffix.isdigit():
        return None
    return int(suffix)


@dataclass(frozen=True)
class NodeSelector:
    """Labels identifying the nodes managed for one owning resource."""

    manage_key: str = MANAGE_LABEL_KEY
    manage_value: str = MANAGE_LABEL_VALUE
    unique_key: str = UNIQUE_LABEL_KEY

    def labels_for(self, namespace: str, name: str) -> dict[str, str]:
        return {
            self.manage_key: self.manage_value,
            self.unique_key: owner_id(namespace, name),
        }


MANAGED_NODES = NodeSelector()


@dataclass
class NodeSimulator:
    namespace: str
    name: str
    spec: dict[str, Any]
    finalizers: list[str] = field(default_factory=list)
    deletion_timestamp: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_object(cls, obj: dict[str, Any]) -> NodeSimulator:
        meta = obj.get("metadata") or {}
        return cls(
            namespace=meta.get("namespace") or "",
            name=meta["name"],
            spec=dict(obj.get("spec") or {}),
            finalizers=list(meta.get("finalizers") or []),
            deletion_timestamp=meta.get("deletionTimestamp"),
            raw=obj,
        )

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    @property
    def number(self) -> int:
        raw = self.spec.get("number", self.spec.get("Number", 0))
        try:
            return int(raw)
        except (TypeError, ValueError):
            return 0

    @property
    def terminating(self) -> bool:
        return bool(self.deletion_timestamp)

    def node_name(self, index: int) -> str:
        return node_name(self.namespace, self.name, index)

    def has_finalizer(self, finalizer: str = FINALIZER) -> bool:
        return finalizer in self.finalizers

    def add_finalizer(self, finalizer: str = FINALIZER) -> None:
        if finalizer not in self.finalizers:
            self.finalizers.append(finalizer)

    def remove_finalizer(self, finalizer: str = FINALIZER) -> None:
        self.finalizers = [f for f in self.finalizers if f != finalizer]

    def to_object(self) -> dict[str, Any]:
        obj = copy.deepcopy(self.raw)
        obj.setdefault("metadata", {})["finalizers"] = list(self.finalizers)
        return obj
