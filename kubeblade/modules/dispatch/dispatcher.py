"""Routes experiments to the scope controller registered for their scope."""

import logging
from typing import Dict, Iterable

from kubeblade.modules.api import (
    ExperimentSpec,
    ExperimentStatus,
    HandlerNotFound,
    OrchestrationError,
    State,
)
from kubeblade.modules.scope import ContainerScopeController, NodeScopeController, PodScopeController

logger = logging.getLogger(__name__)


class Dispatcher:
    """
    Stateless scope -> controller router, built once at startup.

    Never raises for a single experiment: wiring errors and unexpected
    controller failures come back as an Error status so sibling
    experiments keep going.
    """

    def __init__(self, controllers: Iterable):
        self._controllers: Dict[str, object] = {}
        for controller in controllers:
            scope = controller.scope.value
            if scope in self._controllers:
                raise ValueError(f"scope controller for {scope} registered twice")
            self._controllers[scope] = controller

    @property
    def scopes(self):
        return sorted(self._controllers)

    def controller_for(self, scope: str, operation: str):
        """
        Raises:
            HandlerNotFound: If no controller handles the scope
        """
        controller = self._controllers.get(scope)
        if controller is None:
            raise HandlerNotFound(f"can not find the scope controller for {operation}: {scope}")
        return controller

    def create(self, experiment_name: str, spec: ExperimentSpec) -> ExperimentStatus:
        try:
            controller = self.controller_for(spec.scope, "creating")
            status = controller.create(experiment_name, spec)
        except OrchestrationError as e:
            logger.error(f"[{experiment_name}] create {spec.scope} {spec.target} {spec.action} failed: {e}")
            status = ExperimentStatus.failed(str(e))
        except Exception as e:
            logger.exception(f"[{experiment_name}] unexpected error creating {spec.scope} {spec.target} {spec.action}")
            status = ExperimentStatus.failed(str(e))
        status.scope = spec.scope
        status.target = spec.target
        status.action = spec.action
        return status

    def destroy(self, experiment_name: str, spec: ExperimentSpec, prior: ExperimentStatus) -> ExperimentStatus:
        if not prior.res_statuses:
            return ExperimentStatus.destroyed_from(prior)
        try:
            controller = self.controller_for(spec.scope, "destroying")
            status = controller.destroy(experiment_name, spec, prior)
        except OrchestrationError as e:
            logger.error(f"[{experiment_name}] destroy {spec.scope} {spec.target} {spec.action} failed: {e}")
            status = ExperimentStatus.failed(str(e))
            status.res_statuses = [res.model_copy(deep=True) for res in prior.res_statuses]
        except Exception as e:
            logger.exception(f"[{experiment_name}] unexpected error destroying {spec.scope} {spec.target} {spec.action}")
            status = ExperimentStatus.failed(str(e))
            status.res_statuses = [res.model_copy(deep=True) for res in prior.res_statuses]
        # Status identity comes from the prior status when it has one
        status.scope = prior.scope or spec.scope
        status.target = prior.target or spec.target
        status.action = prior.action or spec.action
        if not status.success and not status.state:
            status.state = State.ERROR.value
        return status


def build_dispatcher(inventory, engine, blade_config, execution_config) -> Dispatcher:
    """Register the built-in node, pod and container controllers."""
    return Dispatcher(
        controller_class(inventory, engine, blade_config, execution_config)
        for controller_class in (NodeScopeController, PodScopeController, ContainerScopeController)
    )
