"""
Change admission.

Decides which watch events on ChaosBlade objects are worth a reconcile.
Most status writes come from the reconciler itself and are not admitted.
"""

import logging
from typing import Optional

from kubeblade.modules.api import PRE_SPEC_ANNOTATION, ChaosBlade, Phase

logger = logging.getLogger(__name__)

# Phases whose status churn is produced by a finished pass
_SETTLED_PHASES = (Phase.RUNNING, Phase.ERROR, Phase.DESTROYED)


class ChaosBladePredicate:
    """Event filter for the ChaosBlade controller."""

    def create(self, obj: ChaosBlade) -> bool:
        if obj.deletion_requested:
            return obj.has_finalizer()
        return obj.phase == Phase.INITIAL

    def delete(self, obj: ChaosBlade) -> bool:
        return obj.phase != Phase.DESTROYED

    def generic(self, obj: ChaosBlade) -> bool:
        return False

    def update(self, old: Optional[ChaosBlade], new: ChaosBlade) -> bool:
        """
        Admit an update event.

        Logic:
            - spec changed, or deletion newly requested: admit
            - Initial -> Initial, or anything leaving Updating: reject
            - phase changed: admit
            - status changed while the new phase is not settled: admit
            - everything else: reject
        """
        if old is None:
            return self.create(new)
        if old.spec != new.spec:
            logger.debug(f"Admit {new.name}: spec changed")
            return True
        if new.deletion_requested and not old.deletion_requested:
            logger.debug(f"Admit {new.name}: deletion requested")
            return True
        if old.phase == Phase.INITIAL and new.phase == Phase.INITIAL:
            return False
        if old.phase == Phase.UPDATING:
            return False
        if old.phase != new.phase:
            logger.debug(f"Admit {new.name}: phase {old.phase.value or 'Initial'} -> {new.phase.value}")
            return True
        if old.status != new.status and new.phase not in _SETTLED_PHASES:
            logger.debug(f"Admit {new.name}: status changed in phase {new.phase.value or 'Initial'}")
            return True
        return False

    def needs_prior_spec(self, old: Optional[ChaosBlade], new: ChaosBlade) -> bool:
        """
        Whether the spec that produced the current status must be saved.

        True when an admitted update changed the spec of an object that
        already ran experiments and does not carry a saved spec yet.
        """
        if old is None or old.spec == new.spec:
            return False
        if new.deletion_requested or PRE_SPEC_ANNOTATION in new.metadata.annotations:
            return False
        return new.phase in (Phase.RUNNING, Phase.ERROR)
