"""
Experiment state machine.

Drives a ChaosBlade object from Initial through Running to Destroyed:

    Initial (no finalizer)      -> add finalizer
    Initial                     -> Initialized, statuses reset
    Initialized | Updating      -> create every experiment -> Running | Error
    Running | Error + preSpec   -> destroy with the saved spec -> Updating | Destroying
    deletion | Destroying       -> destroy every experiment -> Destroyed | Destroying
    Destroyed                   -> remove finalizer

Experiments of one object are processed sequentially in spec order; a
failure of one never stops its siblings.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from kubeblade.modules.api import (
    PRE_SPEC_ANNOTATION,
    ChaosBlade,
    ConflictError,
    ExperimentSpec,
    ExperimentStatus,
    Phase,
)

logger = logging.getLogger(__name__)

STATUS_WRITE_ATTEMPTS = 5


@dataclass
class ReconcileResult:
    """What the work queue should do with the object after a pass."""
    requeue: bool = False
    requeue_after: float = 0.0


def spec_for_status(specs: List[ExperimentSpec], index: int, status: ExperimentStatus) -> ExperimentSpec:
    """The spec paired with a recorded status, rebuilt from the status if the spec list is shorter."""
    if index < len(specs):
        return specs[index]
    return ExperimentSpec(scope=status.scope, target=status.target, action=status.action)


class Reconciler:
    """Reconciles one ChaosBlade object per call."""

    def __init__(self, store, dispatcher, requeue_delay: float = 5.0):
        self.store = store
        self.dispatcher = dispatcher
        self.requeue_delay = requeue_delay

    def reconcile(self, name: str) -> ReconcileResult:
        """
        Run one pass for the named object.

        Raises:
            ConflictError: If a metadata update lost an optimistic concurrency race
        """
        blade = self.store.get(name)
        if blade is None:
            logger.info(f"[{name}] chaosblade not found, ignore it")
            return ReconcileResult()

        phase = blade.phase
        if phase == Phase.DESTROYED:
            if blade.has_finalizer():
                blade.remove_finalizer()
                self.store.update(blade)
                logger.info(f"[{name}] removed finalizer, experiments destroyed")
            return ReconcileResult()

        if not blade.spec.experiments and not blade.deletion_requested:
            logger.info(f"[{name}] no experiments declared, nothing to do")
            return ReconcileResult()

        if not blade.has_finalizer():
            if blade.deletion_requested:
                return ReconcileResult()
            blade.add_finalizer()
            self.store.update(blade)
            logger.info(f"[{name}] added finalizer")
            return ReconcileResult(requeue=True)

        if blade.deletion_requested or phase == Phase.DESTROYING:
            return self.finalize(blade)

        if phase == Phase.INITIAL:
            self.write_status(blade, Phase.INITIALIZED, [])
            logger.info(f"[{name}] initialized")
            return ReconcileResult(requeue=True)

        if phase in (Phase.INITIALIZED, Phase.UPDATING):
            return self.create_experiments(blade)

        if phase in (Phase.RUNNING, Phase.ERROR):
            prior = blade.prior_spec()
            if prior is not None:
                return self.update_experiments(blade, prior.experiments)

        return ReconcileResult()

    def create_experiments(self, blade: ChaosBlade) -> ReconcileResult:
        """Create every experiment of the current spec."""
        name = blade.name
        # Phase is Running as soon as one experiment succeeds
        phase = Phase.ERROR
        statuses = []
        for index, spec in enumerate(blade.spec.experiments):
            status = self.dispatcher.create(name, spec)
            if status.success:
                phase = Phase.RUNNING
            else:
                logger.warning(f"[{name}] experiment {index} ({spec.target} {spec.action}) failed: {status.error}")
            statuses.append(status)
        self.write_status(blade, phase, statuses)
        if PRE_SPEC_ANNOTATION in blade.metadata.annotations:
            self.store.remove_annotation(name, PRE_SPEC_ANNOTATION)
        logger.info(f"[{name}] created {len(statuses)} experiment(s), phase: {phase.value}")
        return ReconcileResult()

    def update_experiments(self, blade: ChaosBlade, prior_specs: List[ExperimentSpec]) -> ReconcileResult:
        """Destroy what the previous spec created before re-creating from the new one."""
        name = blade.name
        phase = Phase.UPDATING
        statuses = list(blade.status.exp_statuses)
        for index, status in enumerate(statuses):
            spec = spec_for_status(prior_specs, index, status)
            result = self.dispatcher.destroy(name, spec, status)
            statuses[index] = result
            if not result.success:
                logger.warning(f"[{name}] destroying experiment {index} for update failed: {result.error}")
                phase = Phase.DESTROYING
        self.write_status(blade, phase, statuses)
        logger.info(f"[{name}] destroyed previous experiments for update, phase: {phase.value}")
        return ReconcileResult(requeue=True)

    def finalize(self, blade: ChaosBlade) -> ReconcileResult:
        """Destroy every recorded experiment."""
        name = blade.name
        prior = blade.prior_spec()
        specs = (prior or blade.spec).experiments
        phase = Phase.DESTROYED
        statuses = list(blade.status.exp_statuses)
        for index, status in enumerate(statuses):
            result = self.dispatcher.destroy(name, spec_for_status(specs, index, status), status)
            statuses[index] = result
            if not result.success:
                logger.warning(f"[{name}] destroying experiment {index} failed: {result.error}")
                phase = Phase.DESTROYING
        self.write_status(blade, phase, statuses)
        if phase == Phase.DESTROYING:
            logger.info(f"[{name}] destroy incomplete, retrying in {self.requeue_delay}s")
            return ReconcileResult(requeue=True, requeue_after=self.requeue_delay)
        logger.info(f"[{name}] all experiments destroyed")
        return ReconcileResult(requeue=True)

    def write_status(self, blade: ChaosBlade, phase: Phase, statuses: List[ExperimentStatus]) -> Optional[ChaosBlade]:
        """
        Persist phase and experiment statuses, retrying on conflicts.

        On conflict the object is re-read and the same status is written
        again; the experiments themselves are not re-run.

        Raises:
            ConflictError: If every attempt conflicted
        """
        current = blade
        for attempt in range(1, STATUS_WRITE_ATTEMPTS + 1):
            current.status.phase = phase
            current.status.exp_statuses = statuses
            try:
                return self.store.update_status(current)
            except ConflictError:
                logger.info(f"[{blade.name}] status write conflicted (attempt {attempt}), re-reading")
                fresh = self.store.get(blade.name)
                if fresh is None:
                    logger.info(f"[{blade.name}] object deleted before status could be written")
                    return None
                current = fresh
        raise ConflictError(f"status of chaosblade {blade.name} kept conflicting")
