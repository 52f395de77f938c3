"""Pod scope controller."""

import logging
from typing import Dict, List, Optional

from kubeblade.modules.api import ContainerObjectMeta, NoMatch, Scope
from kubeblade.modules.selector import flags as f
from kubeblade.modules.selector import select

from .base import ScopeController, is_running, parse_container_id

logger = logging.getLogger(__name__)


def pod_meta(pod, container_status=None) -> ContainerObjectMeta:
    """Identity of a pod, optionally narrowed to one of its containers."""
    meta = ContainerObjectMeta(
        namespace=pod.metadata.namespace or "",
        node_name=pod.spec.node_name or "",
        pod_name=pod.metadata.name,
        pod_uid=pod.metadata.uid or "",
    )
    if container_status is not None:
        runtime, container_id = parse_container_id(container_status.container_id)
        meta.container_name = container_status.name
        meta.container_id = container_id
        meta.container_runtime = runtime
    return meta


def first_running_container(pod) -> Optional[object]:
    statuses = (pod.status.container_statuses if pod.status else None) or []
    for container_status in statuses:
        if is_running(container_status):
            return container_status
    return None


class PodScopeController(ScopeController):
    """
    Targets pods.

    Pod faults run inside the pod's namespaces, so every selected pod is
    addressed through its first running container.
    """

    scope = Scope.POD

    def prepare_flags(self, flags: Dict[str, str]) -> Dict[str, str]:
        if not (flags.get(f.NAMESPACE) or "").strip():
            flags[f.NAMESPACE] = self.execution_config.default_namespace
        return flags

    def resolve(self, experiment_name: str, flags: Dict[str, str]) -> List[ContainerObjectMeta]:
        pods = select(Scope.POD, flags, self.inventory)
        resolved = []
        for pod in pods:
            if not pod.spec or not pod.spec.node_name:
                logger.warning(f"[{experiment_name}] pod {pod.metadata.name} is not scheduled, skipping")
                continue
            container_status = first_running_container(pod)
            if container_status is None:
                logger.warning(f"[{experiment_name}] pod {pod.metadata.name} has no running container, skipping")
                continue
            resolved.append(pod_meta(pod, container_status))
        if pods and not resolved:
            raise NoMatch(f"none of the {len(pods)} selected pods has a running container")
        return resolved
