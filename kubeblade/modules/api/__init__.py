"""
API Module - Black Box Interface

Purpose: Shared data model of the ChaosBlade resource and its statuses
Interface: pydantic models, phase/state enums, identity context, error taxonomy
Hidden: Wire-format aliasing and defaulting of API server nulls

Every other module speaks in these types; none of them touch raw dicts.
"""

from .context import ContainerObjectMeta, NodeTargets, ResourceIdentityContext
from .errors import (
    CommandSynthesisError,
    ConflictError,
    HandlerNotFound,
    InvalidQuery,
    InventoryError,
    NoMatch,
    OrchestrationError,
    RemoteOperationFailed,
    TargetVanished,
)
from .models import (
    FINALIZER,
    GROUP,
    KIND,
    PLURAL,
    PRE_SPEC_ANNOTATION,
    VERSION,
    ChaosBlade,
    ChaosBladeSpec,
    ChaosBladeStatus,
    ExperimentSpec,
    ExperimentStatus,
    FlagSpec,
    ObjectMeta,
    Phase,
    ResourceStatus,
    Scope,
    State,
    encode_spec,
)

__all__ = [
    "ChaosBlade",
    "ChaosBladeSpec",
    "ChaosBladeStatus",
    "ExperimentSpec",
    "ExperimentStatus",
    "FlagSpec",
    "ObjectMeta",
    "ResourceStatus",
    "Phase",
    "Scope",
    "State",
    "encode_spec",
    "FINALIZER",
    "PRE_SPEC_ANNOTATION",
    "GROUP",
    "VERSION",
    "PLURAL",
    "KIND",
    "ContainerObjectMeta",
    "NodeTargets",
    "ResourceIdentityContext",
    "OrchestrationError",
    "InvalidQuery",
    "NoMatch",
    "HandlerNotFound",
    "RemoteOperationFailed",
    "TargetVanished",
    "InventoryError",
    "CommandSynthesisError",
    "ConflictError",
]
