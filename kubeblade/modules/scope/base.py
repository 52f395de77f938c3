"""Shared create/destroy flow of the scope controllers."""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

from kubeblade.config.provider import BladeConfig, ExecutionConfig
from kubeblade.modules.api import (
    ContainerObjectMeta,
    ExperimentSpec,
    ExperimentStatus,
    NoMatch,
    OrchestrationError,
    ResourceIdentityContext,
    ResourceStatus,
    Scope,
    State,
)

logger = logging.getLogger(__name__)

DOCKER_ID_LENGTH = 12


def parse_container_id(raw: Optional[str]) -> Tuple[str, str]:
    """
    Split a container status id into (runtime, id).

    'docker://<64 hex>' becomes ('docker', '<first 12 hex>') and
    'containerd://<id>' becomes ('containerd', '<id>').
    """
    if not raw:
        return "", ""
    if "://" not in raw:
        return "", raw
    runtime, container_id = raw.split("://", 1)
    if runtime == "docker":
        container_id = container_id[:DOCKER_ID_LENGTH]
    return runtime, container_id


def is_running(container_status) -> bool:
    state = container_status.state
    return state is not None and state.running is not None and bool(container_status.container_id)


class ScopeController(ABC):
    """
    Base class for node, pod and container controllers.

    Create resolves live resources and hands them to the execution engine.
    Destroy never queries the inventory for selection: it rebuilds the
    targets from the statuses recorded at create time.
    """

    scope: Scope

    def __init__(self, inventory, engine, blade_config: BladeConfig, execution_config: ExecutionConfig):
        self.inventory = inventory
        self.engine = engine
        self.blade_config = blade_config
        self.execution_config = execution_config

    def prepare_flags(self, flags: Dict[str, str]) -> Dict[str, str]:
        """Hook for scope specific flag defaults."""
        return flags

    @abstractmethod
    def resolve(self, experiment_name: str, flags: Dict[str, str]) -> List[ContainerObjectMeta]:
        """Resolve the live resources targeted by the flags."""

    def create(self, experiment_name: str, spec: ExperimentSpec) -> ExperimentStatus:
        flags = self.prepare_flags(spec.flags())
        try:
            resolved = self.resolve(experiment_name, flags)
            if not resolved:
                raise NoMatch(f"no {self.scope.value} matched after applying the count and percent limits")
        except OrchestrationError as e:
            logger.warning(f"[{experiment_name}] {self.scope.value} {spec.target} {spec.action}: {e}")
            return ExperimentStatus.failed(str(e))

        context = ResourceIdentityContext()
        for meta in resolved:
            context.add(meta)
        return self.engine.execute(experiment_name, context, spec, is_destroy=False)

    def destroy(self, experiment_name: str, spec: ExperimentSpec, prior: ExperimentStatus) -> ExperimentStatus:
        finished = []
        context = ResourceIdentityContext()
        for status in prior.res_statuses:
            if status.state == State.DESTROYED:
                finished.append(status.model_copy(deep=True))
                continue
            context.add(self.meta_from_status(status))

        if not context:
            logger.info(f"[{experiment_name}] all resources of {spec.target} {spec.action} already destroyed")
            return ExperimentStatus(
                scope=spec.scope,
                target=spec.target,
                action=spec.action,
                success=True,
                state=State.DESTROYED.value,
                res_statuses=finished,
            )

        result = self.engine.execute(experiment_name, context, spec, is_destroy=True)
        result.res_statuses = finished + result.res_statuses
        return result

    def meta_from_status(self, status: ResourceStatus) -> ContainerObjectMeta:
        """Rebuild the identity of a resource from its recorded status."""
        meta = ContainerObjectMeta.parse_identifier(status.identifier)
        if status.node_name:
            meta.node_name = status.node_name
        meta.id = status.id
        if self.scope == Scope.NODE:
            meta.node_uid = status.uid
            if not meta.node_name:
                meta.node_name = status.name
        elif self.scope == Scope.POD:
            meta.pod_uid = status.uid
        return meta
