"""
Kubeblade shared data models.

These models mirror the ChaosBlade custom resource (group chaosblade.io,
version v1alpha1) and are passed between the reconciler, the dispatch
router, the scope controllers and the execution engine.

Field names are snake_case in Python and camelCase on the wire; every
model accepts both on input and emits the wire form from to_dict().
"""

import json
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

GROUP = "chaosblade.io"
VERSION = "v1alpha1"
PLURAL = "chaosblades"
KIND = "ChaosBlade"

FINALIZER = "finalizer.chaosblade.io"
PRE_SPEC_ANNOTATION = "preSpec"

# Enums


class Phase(str, Enum):
    """Coarse lifecycle phase of a ChaosBlade object."""

    INITIAL = ""
    INITIALIZED = "Initialized"
    RUNNING = "Running"
    UPDATING = "Updating"
    DESTROYING = "Destroying"
    DESTROYED = "Destroyed"
    ERROR = "Error"


class State(str, Enum):
    """Outcome state of an experiment or of a single resource."""

    SUCCESS = "Success"
    ERROR = "Error"
    DESTROYED = "Destroyed"


class Scope(str, Enum):
    """Resource kinds an experiment can target."""

    NODE = "node"
    POD = "pod"
    CONTAINER = "container"


# Spec models


class FlagSpec(BaseModel):
    """A single matcher: flag name plus one or more values."""

    name: str
    value: List[str] = Field(default_factory=list)


class ExperimentSpec(BaseModel):
    """One fault-injection intent: scope + target + action + matchers."""

    scope: str = Field(..., description="node, pod or container")
    target: str = Field(..., description="Fault category, e.g. cpu or network")
    action: str = Field(..., description="Fault scenario, e.g. load or delay")
    desc: Optional[str] = None
    matchers: List[FlagSpec] = Field(default_factory=list)

    def flags(self) -> Dict[str, str]:
        """Flatten matchers into a name -> comma-joined value mapping."""
        return {matcher.name: ",".join(matcher.value) for matcher in self.matchers}


class ChaosBladeSpec(BaseModel):
    """Desired state: an ordered list of experiments."""

    experiments: List[ExperimentSpec] = Field(default_factory=list)


# Status models


class ResourceStatus(BaseModel):
    """Outcome of one remote operation against one matched resource."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field("", description="Correlation id returned by the agent on create")
    uid: str = ""
    name: str = ""
    kind: str = ""
    state: str = ""
    success: bool = False
    error: str = ""
    identifier: str = ""
    node_name: str = Field("", alias="nodeName")

    def succeed(self, id: Optional[str] = None, error: str = "") -> "ResourceStatus":
        """Mark the resource as successfully created."""
        if id is not None:
            self.id = id
        self.state = State.SUCCESS.value
        self.success = True
        self.error = error
        return self

    def destroyed(self, error: str = "") -> "ResourceStatus":
        """Mark the resource as successfully torn down."""
        self.state = State.DESTROYED.value
        self.success = True
        self.error = error
        return self

    def fail(self, error: str) -> "ResourceStatus":
        """Mark the resource as failed, keeping any correlation id."""
        self.state = State.ERROR.value
        self.success = False
        self.error = error
        return self


class ExperimentStatus(BaseModel):
    """Aggregate outcome of one experiment, index-aligned with spec.experiments."""

    model_config = ConfigDict(populate_by_name=True)

    scope: str = ""
    target: str = ""
    action: str = ""
    success: bool = False
    state: str = ""
    error: str = ""
    res_statuses: List[ResourceStatus] = Field(default_factory=list, alias="resStatuses")

    @classmethod
    def failed(cls, error: str) -> "ExperimentStatus":
        """Build a status for an experiment that failed before any resource was touched."""
        return cls(success=False, state=State.ERROR.value, error=error)

    @classmethod
    def destroyed_from(cls, prior: "ExperimentStatus") -> "ExperimentStatus":
        """
        Build a destroyed status from a previously recorded one.

        Every recorded resource is carried over as destroyed. Used when
        there is nothing left to tear down.
        """
        res_statuses = [
            status.model_copy(deep=True).destroyed()
            for status in prior.res_statuses
        ]
        return cls(
            scope=prior.scope,
            target=prior.target,
            action=prior.action,
            success=True,
            state=State.DESTROYED.value,
            res_statuses=res_statuses,
        )


class ChaosBladeStatus(BaseModel):
    """Observed state written back by the reconciler."""

    model_config = ConfigDict(populate_by_name=True)

    phase: Phase = Phase.INITIAL
    exp_statuses: List[ExperimentStatus] = Field(default_factory=list, alias="expStatuses")

    @field_validator("phase", mode="before")
    @classmethod
    def normalize_phase(cls, v):
        """Treat an absent phase as Initial."""
        if v is None or v == "Initial":
            return Phase.INITIAL
        return v


# Object models


class ObjectMeta(BaseModel):
    """The subset of Kubernetes object metadata the reconciler works with."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    name: str
    uid: Optional[str] = None
    resource_version: Optional[str] = Field(None, alias="resourceVersion")
    generation: Optional[int] = None
    finalizers: List[str] = Field(default_factory=list)
    annotations: Dict[str, str] = Field(default_factory=dict)
    labels: Dict[str, str] = Field(default_factory=dict)
    deletion_timestamp: Optional[str] = Field(None, alias="deletionTimestamp")

    @field_validator("finalizers", "annotations", "labels", mode="before")
    @classmethod
    def default_empty(cls, v, info):
        """The API server sends null for empty collections."""
        if v is None:
            return [] if info.field_name == "finalizers" else {}
        return v


class ChaosBlade(BaseModel):
    """The declarative ChaosBlade object."""

    model_config = ConfigDict(populate_by_name=True)

    api_version: str = Field(f"{GROUP}/{VERSION}", alias="apiVersion")
    kind: str = KIND
    metadata: ObjectMeta
    spec: ChaosBladeSpec = Field(default_factory=ChaosBladeSpec)
    status: ChaosBladeStatus = Field(default_factory=ChaosBladeStatus)

    @field_validator("spec", "status", mode="before")
    @classmethod
    def default_section(cls, v, info):
        if v is None:
            return ChaosBladeSpec() if info.field_name == "spec" else ChaosBladeStatus()
        return v

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChaosBlade":
        """Parse an object as returned by the Kubernetes API."""
        return cls.model_validate(data)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the wire form accepted by the Kubernetes API."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def phase(self) -> Phase:
        return self.status.phase

    @property
    def deletion_requested(self) -> bool:
        return bool(self.metadata.deletion_timestamp)

    def has_finalizer(self) -> bool:
        return FINALIZER in self.metadata.finalizers

    def add_finalizer(self) -> None:
        if not self.has_finalizer():
            self.metadata.finalizers.append(FINALIZER)

    def remove_finalizer(self) -> None:
        self.metadata.finalizers = [f for f in self.metadata.finalizers if f != FINALIZER]

    def prior_spec(self) -> Optional[ChaosBladeSpec]:
        """
        Return the spec stored in the prior-spec annotation, if any.

        Returns:
            The spec that produced the current experiment statuses, or None
            when the annotation is absent or cannot be decoded
        """
        raw = self.metadata.annotations.get(PRE_SPEC_ANNOTATION)
        if not raw:
            return None
        try:
            return ChaosBladeSpec.model_validate(json.loads(raw))
        except (ValueError, TypeError):
            return None


def encode_spec(spec: ChaosBladeSpec) -> str:
    """Encode a spec for the prior-spec annotation."""
    return json.dumps(spec.model_dump(by_alias=True, exclude_none=True, mode="json"))
