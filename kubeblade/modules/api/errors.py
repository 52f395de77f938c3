"""Error taxonomy shared by the selection, execution and reconcile layers."""

from typing import Optional


class OrchestrationError(Exception):
    """Base class for errors raised while orchestrating an experiment."""

    code = "OrchestrationError"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def __str__(self) -> str:
        return self.message


class InvalidQuery(OrchestrationError):
    """Selection flags are malformed or contradictory. Never retried automatically."""

    code = "InvalidQuery"


class NoMatch(OrchestrationError):
    """The query was well formed but matched zero resources."""

    code = "NoMatch"


class HandlerNotFound(OrchestrationError):
    """No scope controller is registered for the requested scope."""

    code = "HandlerNotFound"


class RemoteOperationFailed(OrchestrationError):
    """The remote agent or the exec transport failed for one resource."""

    code = "RemoteOperationFailed"


class TargetVanished(OrchestrationError):
    """The addressed resource no longer exists. Treated as success."""

    code = "TargetVanished"


class InventoryError(OrchestrationError):
    """A cluster inventory read failed for a reason other than not-found."""

    code = "InventoryError"


class CommandSynthesisError(OrchestrationError):
    """No command can be built for a resource (e.g. unsupported runtime)."""

    code = "CommandSynthesisError"


class ConflictError(OrchestrationError):
    """An optimistic-concurrency conflict while persisting an object."""

    code = "Conflict"
