"""
Operator-side actions.

A few experiments are carried out by the operator itself through the
Kubernetes API instead of a blade command on the tool agent. The engine
looks an experiment up in the action table before building a command.
"""

import logging
import uuid
from typing import Dict, Protocol, Tuple

from kubeblade.modules.api import ContainerObjectMeta, ExperimentSpec, RemoteOperationFailed, Scope, TargetVanished

logger = logging.getLogger(__name__)

FAIL_POD_ANNOTATION_PREFIX = "failPod-"
FAULT_IMAGE_SUFFIX = "-fault-injection"

ActionKey = Tuple[str, str, str]


def action_key(spec: ExperimentSpec) -> ActionKey:
    return (spec.scope, spec.target, spec.action)


def new_uid() -> str:
    return uuid.uuid4().hex[:16]


class ClusterAction(Protocol):
    """
    One experiment carried out against one resource through the API server.

    Both calls raise TargetVanished when the resource no longer exists and
    RemoteOperationFailed for any other failure.
    """

    def create(self, inventory, meta: ContainerObjectMeta) -> str:
        """Inject the fault. Returns the experiment uid, empty when there is nothing to undo."""
        ...

    def destroy(self, inventory, meta: ContainerObjectMeta) -> None:
        """Undo what create did."""
        ...


class DeletePodAction:
    """Deletes the pod. The deletion is final, destroy only reports it."""

    def create(self, inventory, meta: ContainerObjectMeta) -> str:
        inventory.delete_pod(meta.namespace, meta.pod_name)
        return new_uid()

    def destroy(self, inventory, meta: ContainerObjectMeta) -> None:
        logger.debug(f"pod {meta.namespace}/{meta.pod_name} was deleted, nothing to restore")


def _is_ready(pod) -> bool:
    conditions = (pod.status.conditions if pod.status else None) or []
    return any(c.type == "Ready" and c.status == "True" for c in conditions)


class FailPodAction:
    """
    Makes the containers of a ready pod fail by pointing them at an image
    that does not exist.

    The original image of each container is saved in a failPod-<container>
    annotation. Containers that already carry the annotation are left alone.
    Destroy puts the saved images back and removes the annotations.
    """

    def _get(self, inventory, meta: ContainerObjectMeta):
        pod = inventory.get_pod(meta.namespace, meta.pod_name)
        if pod is None:
            raise TargetVanished(f"pod {meta.namespace}/{meta.pod_name} not found")
        return pod

    def create(self, inventory, meta: ContainerObjectMeta) -> str:
        pod = self._get(inventory, meta)
        if not _is_ready(pod):
            raise RemoteOperationFailed(f"pod {meta.namespace}/{meta.pod_name} is not ready")

        annotations = pod.metadata.annotations or {}
        saved = {}
        containers = []
        for container in pod.spec.containers:
            key = FAIL_POD_ANNOTATION_PREFIX + container.name
            if key in annotations:
                continue
            saved[key] = container.image
            containers.append({"name": container.name, "image": f"{container.image}{FAULT_IMAGE_SUFFIX}"})
        if not containers:
            logger.info(f"pod {meta.namespace}/{meta.pod_name} is already failing")
            return ""

        inventory.patch_pod(
            meta.namespace,
            meta.pod_name,
            {"metadata": {"annotations": saved}, "spec": {"containers": containers}},
        )
        return new_uid()

    def destroy(self, inventory, meta: ContainerObjectMeta) -> None:
        pod = self._get(inventory, meta)
        annotations = pod.metadata.annotations or {}
        removed = {}
        containers = []
        for container in pod.spec.containers:
            key = FAIL_POD_ANNOTATION_PREFIX + container.name
            image = annotations.get(key)
            if image is None:
                continue
            # null deletes the key in a merge patch
            removed[key] = None
            containers.append({"name": container.name, "image": image})
        if containers:
            inventory.patch_pod(
                meta.namespace,
                meta.pod_name,
                {"metadata": {"annotations": removed}, "spec": {"containers": containers}},
            )


class CordonNodeAction:
    """Marks the node unschedulable. A node that was already cordoned stays so after destroy."""

    def create(self, inventory, meta: ContainerObjectMeta) -> str:
        node = inventory.get_node(meta.node_name)
        if node is None:
            raise TargetVanished(f"node {meta.node_name} not found")
        if node.spec is not None and node.spec.unschedulable:
            logger.info(f"node {meta.node_name} is already cordoned")
            return ""
        inventory.patch_node(meta.node_name, {"spec": {"unschedulable": True}})
        return new_uid()

    def destroy(self, inventory, meta: ContainerObjectMeta) -> None:
        inventory.patch_node(meta.node_name, {"spec": {"unschedulable": False}})


def default_actions() -> Dict[ActionKey, ClusterAction]:
    """Registration table of the built-in operator-side actions."""
    return {
        (Scope.POD.value, "pod", "delete"): DeletePodAction(),
        (Scope.POD.value, "pod", "fail"): FailPodAction(),
        (Scope.NODE.value, "node", "cordon"): CordonNodeAction(),
    }
