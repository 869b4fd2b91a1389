from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator

QUANTITY_RE = re.compile(r"^[0-9]+(\.[0-9]+)?(m|k|Ki|M|Mi|G|Gi|T|Ti|P|Pi|E|Ei)?$")
CIDR_RE = re.compile(r"^\d{1,3}(\.\d{1,3}){3}/\d{1,2}$")


class Taint(BaseModel):
    key: str
    value: str = ""
    effect: str = Field("NoSchedule", description="NoSchedule|PreferNoSchedule|NoExecute")

    @field_validator("effect")
    @classmethod
    def check_effect(cls, v: str) -> str:
        if v not in {"NoSchedule", "PreferNoSchedule", "NoExecute"}:
            raise ValueError(f"Unsupported taint effect {v!r}.")
        return v


class NodeSimulatorSpec(BaseModel):
    """Desired state of a NodeSimulator, as read from the custom object."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    number: int = Field(0, alias="Number", description="How many fake nodes to keep")
    cpu: str = Field("4", description="CPU capacity per node (quantity)")
    memory: str = Field("8Gi", description="Memory capacity per node (quantity)")
    pods: int = Field(110, ge=0, le=10000, description="Pod capacity per node")
    gpu: int = Field(0, ge=0, le=64, description="nvidia.com/gpu capacity per node")
    pod_cidr: str | None = Field(None, alias="podCIDR")
    kubelet_version: str = Field("v1.20.0-sim", alias="kubeletVersion")
    labels: dict[str, str] = Field(default_factory=dict)
    taints: list[Taint] = Field(default_factory=list)

    @field_validator("cpu", "memory", mode="before")
    @classmethod
    def check_quantity(cls, v: str | int) -> str:
        v = str(v).strip()
        if not QUANTITY_RE.match(v):
            raise ValueError(f"Invalid resource quantity {v!r}.")
        return v

    @field_validator("pod_cidr")
    @classmethod
    def check_cidr(cls, v: str | None) -> str | None:
        if v is not None and not CIDR_RE.match(v):
            raise ValueError(f"Invalid podCIDR {v!r}.")
        return v
