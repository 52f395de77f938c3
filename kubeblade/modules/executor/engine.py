"""
Execution engine.

Issues one blade command per resolved resource through the tool agent on
the resource's node, with bounded parallelism, and folds the per-resource
outcomes into an experiment status. Experiments in the action table are
carried out through the Kubernetes API instead.
"""

import logging
from typing import Dict, Optional

from kubeblade.config.provider import BladeConfig, ExecutionConfig
from kubeblade.modules.api import (
    CommandSynthesisError,
    ContainerObjectMeta,
    ExperimentSpec,
    ExperimentStatus,
    InventoryError,
    RemoteOperationFailed,
    ResourceIdentityContext,
    ResourceStatus,
    Scope,
    State,
    TargetVanished,
)

from .actions import ClusterAction, action_key, default_actions
from .commands import CommandDialect, CommandSynthesizer, blade_binary, default_synthesizers, resolve_dialect
from .parallelizer import ResultAccumulator, parallelize

logger = logging.getLogger(__name__)

RESOURCES_NOT_FOUND = "the resources not found"
SEE_RESOURCE_STATUS = "see resStatus for the error details"


def resource_name(scope: str, meta: ContainerObjectMeta) -> str:
    if scope == Scope.NODE:
        return meta.node_name
    if scope == Scope.CONTAINER:
        return meta.container_name
    return meta.pod_name


def resource_uid(scope: str, meta: ContainerObjectMeta) -> str:
    if scope == Scope.NODE:
        return meta.node_uid
    if scope == Scope.CONTAINER:
        return meta.container_id
    return meta.pod_uid


class ExecutionEngine:
    """Runs create/destroy operations for a resolved identity context."""

    def __init__(
        self,
        inventory,
        channel,
        blade_config: BladeConfig,
        execution_config: ExecutionConfig,
        synthesizers: Optional[Dict[CommandDialect, CommandSynthesizer]] = None,
        actions: Optional[Dict[tuple, ClusterAction]] = None,
    ):
        self.inventory = inventory
        self.channel = channel
        self.blade_config = blade_config
        self.execution_config = execution_config
        self.synthesizers = synthesizers or default_synthesizers()
        self.actions = default_actions() if actions is None else actions

    def execute(
        self,
        experiment_name: str,
        context: ResourceIdentityContext,
        spec: ExperimentSpec,
        is_destroy: bool,
    ) -> ExperimentStatus:
        """
        Execute one experiment against every resource of the context.

        Args:
            experiment_name: Name of the ChaosBlade object, for logging
            context: Resources resolved by the scope controller
            spec: Experiment descriptor
            is_destroy: True to tear down, False to inject

        Returns:
            ExperimentStatus whose success is true only if every resource succeeded
        """
        resources = context.resources()
        status = ExperimentStatus(scope=spec.scope, target=spec.target, action=spec.action)
        if not resources:
            status.state = State.ERROR.value
            status.error = RESOURCES_NOT_FOUND
            return status

        handle = "destroy" if is_destroy else "create"
        logger.info(
            f"[{experiment_name}] {handle} {spec.scope} {spec.target} {spec.action} "
            f"on {len(resources)} resource(s)"
        )
        flags = spec.flags()
        accumulator = ResultAccumulator()

        def do_work(index: int) -> None:
            meta = resources[index]
            try:
                result = self._execute_one(experiment_name, spec, flags, meta, is_destroy)
            except Exception as e:
                logger.exception(f"[{experiment_name}] unexpected error on {meta.identifier()}")
                result = self._new_status(spec, meta).fail(str(e))
            accumulator.add(result)

        parallelize(len(resources), do_work, self.execution_config.max_workers)

        status.res_statuses = accumulator.statuses()
        status.success = accumulator.success
        if status.success:
            status.state = State.DESTROYED.value if is_destroy else State.SUCCESS.value
        else:
            status.state = State.ERROR.value
            status.error = SEE_RESOURCE_STATUS
        logger.info(f"[{experiment_name}] {handle} finished, state: {status.state}")
        return status

    def _new_status(self, spec: ExperimentSpec, meta: ContainerObjectMeta) -> ResourceStatus:
        return ResourceStatus(
            id=meta.id,
            uid=resource_uid(spec.scope, meta),
            name=resource_name(spec.scope, meta),
            kind=spec.scope,
            identifier=meta.identifier(),
            node_name=meta.node_name,
        )

    def _target_exists(self, scope: str, meta: ContainerObjectMeta) -> bool:
        if scope == Scope.NODE:
            return self.inventory.get_node(meta.node_name) is not None
        return self.inventory.get_pod(meta.namespace, meta.pod_name) is not None

    def _execute_one(
        self,
        experiment_name: str,
        spec: ExperimentSpec,
        flags: Dict[str, str],
        meta: ContainerObjectMeta,
        is_destroy: bool,
    ) -> ResourceStatus:
        status = self._new_status(spec, meta)
        identifier = status.identifier
        handle = "destroy" if is_destroy else "create"

        def gone(message: str) -> ResourceStatus:
            logger.info(f"[{experiment_name}] {identifier}: {message}")
            return status.destroyed(message) if is_destroy else status.succeed(error=message)

        if is_destroy and not meta.id:
            return gone("no experiment uid recorded, nothing to destroy")

        try:
            if not self._target_exists(spec.scope, meta):
                return gone(f"{status.kind} {status.name} not found")
        except InventoryError as e:
            logger.error(f"[{experiment_name}] {identifier}: {e}")
            return status.fail(str(e))

        action = self.actions.get(action_key(spec))
        if action is not None:
            try:
                if is_destroy:
                    action.destroy(self.inventory, meta)
                    return status.destroyed()
                return status.succeed(id=action.create(self.inventory, meta))
            except TargetVanished as e:
                return gone(str(e))
            except (InventoryError, RemoteOperationFailed) as e:
                logger.error(f"[{experiment_name}] {identifier}: {handle} failed: {e}")
                return status.fail(str(e))

        try:
            dialect = resolve_dialect(spec.scope, meta.container_runtime, self.execution_config.prefer_cri)
            synthesizer = self.synthesizers[dialect]
            blade_bin = blade_binary(flags, self.blade_config.blade_bin)
            if is_destroy:
                command = synthesizer.destroy(blade_bin, spec, meta)
            else:
                command = synthesizer.create(blade_bin, spec, meta)
        except CommandSynthesisError as e:
            logger.error(f"[{experiment_name}] {identifier}: {e}")
            return status.fail(str(e))

        namespace = self.blade_config.operator_namespace
        try:
            tool_pod = self.inventory.find_tool_pod(
                meta.node_name, namespace, self.blade_config.tool_pod_selector
            )
        except InventoryError as e:
            logger.error(f"[{experiment_name}] {identifier}: {e}")
            return status.fail(str(e))
        if tool_pod is None:
            message = f"can not find the {self.blade_config.tool_pod_name} pod on node {meta.node_name}"
            if is_destroy:
                return gone(message)
            logger.error(f"[{experiment_name}] {identifier}: {message}")
            return status.fail(message)

        pod_name = tool_pod.metadata.name
        logger.debug(f"[{experiment_name}] {identifier}: exec in {namespace}/{pod_name}: {command}")
        try:
            result = self.channel.exec(
                pod_name,
                namespace,
                self.blade_config.tool_container_name,
                command,
                timeout=self.execution_config.exec_timeout,
            )
        except TargetVanished as e:
            if is_destroy:
                return gone(str(e))
            logger.error(f"[{experiment_name}] {identifier}: {e}")
            return status.fail(str(e))
        except RemoteOperationFailed as e:
            logger.error(f"[{experiment_name}] {identifier}: {e}")
            return status.fail(str(e))

        if not result.success:
            logger.warning(f"[{experiment_name}] {identifier}: {handle} failed: {result.error}")
            return status.fail(result.error)
        if is_destroy:
            return status.destroyed()
        return status.succeed(id=result.result)
