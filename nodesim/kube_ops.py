from __future__ import annotations

import json
from typing import Any, Mapping

from kubernetes import client, config

from .resources import GROUP, PLURAL, VERSION
from .settings import settings


class ClusterError(Exception):
    def __init__(self, message: str, status: int | None = None, reason: str | None = None):
        super().__init__(message)
        self.status = status
        self.reason = reason


class NotFound(ClusterError):
    pass


class AlreadyExists(ClusterError):
    pass


def _api_reason(e: client.ApiException) -> str | None:
    """The Status ``reason`` from the response body, e.g. ``AlreadyExists``."""
    if not e.body:
        return None
    try:
        body = json.loads(e.body)
    except (TypeError, ValueError):
        return None
    return body.get("reason") if isinstance(body, dict) else None


def translate(e: client.ApiException, what: str) -> ClusterError:
    reason = _api_reason(e) or e.reason
    msg = f"{what}: HTTP {e.status} {reason or ''}".rstrip()
    if e.status == 404:
        return NotFound(msg, status=e.status, reason=reason)
    if e.status == 409 and reason == "AlreadyExists":
        return AlreadyExists(msg, status=e.status, reason=reason)
    return ClusterError(msg, status=e.status, reason=reason)


def label_selector(labels: Mapping[str, str]) -> str:
    return ",".join(f"{k}={v}" for k, v in sorted(labels.items()))


def load_client() -> KubeClusterClient:
    """Build a client from in-cluster credentials or a kubeconfig."""
    if settings.in_cluster:
        config.load_incluster_config()
    else:
        config.load_kube_config(config_file=settings.kubeconfig)
    return KubeClusterClient(client.ApiClient())


class KubeClusterClient:
    """Typed access to NodeSimulator objects and the Nodes they own.

    Every object goes in and comes out as a plain dict; API failures are
    raised as :class:`ClusterError` subclasses.
    """

    def __init__(
        self,
        api_client: client.ApiClient | None = None,
        core: client.CoreV1Api | None = None,
        custom: client.CustomObjectsApi | None = None,
    ):
        self.api_client = api_client or client.ApiClient()
        self.core = core or client.CoreV1Api(self.api_client)
        self.custom = custom or client.CustomObjectsApi(self.api_client)

    def _to_dict(self, obj: Any) -> dict[str, Any]:
        return self.api_client.sanitize_for_serialization(obj)

    # NodeSimulator objects

    def get_simulator(self, namespace: str, name: str) -> dict[str, Any]:
        try:
            return self.custom.get_namespaced_custom_object(GROUP, VERSION, namespace, PLURAL, name)
        except client.ApiException as e:
            raise translate(e, f"get nodesimulator {namespace}/{name}") from e

    def update_simulator(self, obj: dict[str, Any]) -> dict[str, Any]:
        meta = obj["metadata"]
        namespace, name = meta["namespace"], meta["name"]
        try:
            return self.custom.replace_namespaced_custom_object(GROUP, VERSION, namespace, PLURAL, name, obj)
        except client.ApiException as e:
            raise translate(e, f"update nodesimulator {namespace}/{name}") from e

    def list_simulators(self, namespace: str | None = None) -> list[dict[str, Any]]:
        try:
            if namespace:
                resp = self.custom.list_namespaced_custom_object(GROUP, VERSION, namespace, PLURAL)
            else:
                resp = self.custom.list_cluster_custom_object(GROUP, VERSION, PLURAL)
        except client.ApiException as e:
            raise translate(e, "list nodesimulators") from e
        return list(resp.get("items") or [])

    # Nodes

    def get_node(self, name: str) -> dict[str, Any]:
        try:
            return self._to_dict(self.core.read_node(name))
        except client.ApiException as e:
            raise translate(e, f"get node {name}") from e

    def list_nodes(self, labels: Mapping[str, str]) -> list[dict[str, Any]]:
        try:
            resp = self.core.list_node(label_selector=label_selector(labels))
        except client.ApiException as e:
            raise translate(e, "list nodes") from e
        return list(self._to_dict(resp).get("items") or [])

    def create_node(self, node: dict[str, Any]) -> dict[str, Any]:
        name = node["metadata"]["name"]
        try:
            return self._to_dict(self.core.create_node(node))
        except client.ApiException as e:
            raise translate(e, f"create node {name}") from e

    def patch_node(self, name: str, path: str, value: Any) -> dict[str, Any]:
        """Replace one top-level field with a JSON patch.

        ``/status`` goes through the status sub-resource; everything else
        through the main resource.
        """
        ops = [{"op": "replace", "path": path, "value": value}]
        try:
            if path == "/status":
                resp = self.core.patch_node_status(name, ops)
            else:
                resp = self.core.patch_node(name, ops)
        except client.ApiException as e:
            raise translate(e, f"patch node {name} {path}") from e
        return self._to_dict(resp)

    def delete_node(self, name: str) -> None:
        try:
            self.core.delete_node(name)
        except client.ApiException as e:
            raise translate(e, f"delete node {name}") from e
