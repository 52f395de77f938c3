"""Access to nodes and pods through the Kubernetes API."""

import logging
import os
from typing import List, Optional

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from kubeblade.modules.api import InventoryError, RemoteOperationFailed, TargetVanished

logger = logging.getLogger(__name__)


def load_cluster_config(context: Optional[str] = None) -> None:
    """Load in-cluster credentials when running in a pod, kubeconfig otherwise."""
    if os.getenv("KUBERNETES_SERVICE_HOST"):
        config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes config")
    else:
        config.load_kube_config(context=context)
        logger.info(f"Loaded local Kubernetes config (context: {context or 'current'})")


class KubernetesInventory:
    """
    Cluster inventory backed by CoreV1Api.

    Get calls return None for objects that do not exist; every other API
    failure is raised as InventoryError. The write calls back the
    operator-side actions (pod delete, pod fail, node cordon): a missing
    object raises TargetVanished, any other failure RemoteOperationFailed.
    """

    def __init__(self, core_v1: Optional[client.CoreV1Api] = None, request_timeout: int = 30):
        self.core_v1 = core_v1 or client.CoreV1Api()
        self.request_timeout = request_timeout

    def get_node(self, name: str) -> Optional[client.V1Node]:
        try:
            return self.core_v1.read_node(name, _request_timeout=self.request_timeout)
        except ApiException as e:
            if e.status == 404:
                return None
            raise InventoryError(f"get node {name} failed: {e.reason}")

    def list_nodes(self, label_selector: Optional[str] = None) -> List[client.V1Node]:
        try:
            nodes = self.core_v1.list_node(
                label_selector=label_selector or "",
                _request_timeout=self.request_timeout,
            )
        except ApiException as e:
            raise InventoryError(f"list nodes by '{label_selector or ''}' failed: {e.reason}")
        return list(nodes.items or [])

    def get_pod(self, namespace: str, name: str) -> Optional[client.V1Pod]:
        try:
            return self.core_v1.read_namespaced_pod(
                name, namespace, _request_timeout=self.request_timeout
            )
        except ApiException as e:
            if e.status == 404:
                return None
            raise InventoryError(f"get pod {namespace}/{name} failed: {e.reason}")

    def list_pods(self, namespace: str, label_selector: Optional[str] = None) -> List[client.V1Pod]:
        try:
            pods = self.core_v1.list_namespaced_pod(
                namespace,
                label_selector=label_selector or "",
                _request_timeout=self.request_timeout,
            )
        except ApiException as e:
            raise InventoryError(
                f"list pods in {namespace} by '{label_selector or ''}' failed: {e.reason}"
            )
        return list(pods.items or [])

    def find_tool_pod(self, node_name: str, namespace: str, label_selector: str) -> Optional[client.V1Pod]:
        """
        Find the running tool agent pod scheduled on a node.

        Returns:
            The pod, or None if no running agent pod exists on the node
        """
        try:
            pods = self.core_v1.list_namespaced_pod(
                namespace,
                label_selector=label_selector,
                field_selector=f"spec.nodeName={node_name}",
                _request_timeout=self.request_timeout,
            )
        except ApiException as e:
            raise InventoryError(f"list tool pods on node {node_name} failed: {e.reason}")
        candidates = [
            pod for pod in (pods.items or [])
            if pod.status is not None and pod.status.phase == "Running"
        ]
        if len(candidates) > 1:
            logger.warning(
                f"Multiple tool pods ({len(candidates)}) found on node {node_name}, "
                f"using first: {candidates[0].metadata.name}"
            )
        return candidates[0] if candidates else None

    def _write_failed(self, e: ApiException, action: str, target: str):
        if e.status == 404:
            raise TargetVanished(f"{target} not found")
        raise RemoteOperationFailed(f"{action} {target} failed: {e.reason}")

    def delete_pod(self, namespace: str, name: str) -> None:
        try:
            self.core_v1.delete_namespaced_pod(name, namespace, _request_timeout=self.request_timeout)
        except ApiException as e:
            self._write_failed(e, "delete", f"pod {namespace}/{name}")
        logger.info(f"Deleted pod {namespace}/{name}")

    def patch_pod(self, namespace: str, name: str, body: dict) -> None:
        """Apply a strategic merge patch to a pod."""
        try:
            self.core_v1.patch_namespaced_pod(name, namespace, body, _request_timeout=self.request_timeout)
        except ApiException as e:
            self._write_failed(e, "patch", f"pod {namespace}/{name}")

    def patch_node(self, name: str, body: dict) -> None:
        """Apply a strategic merge patch to a node."""
        try:
            self.core_v1.patch_node(name, body, _request_timeout=self.request_timeout)
        except ApiException as e:
            self._write_failed(e, "patch", f"node {name}")
