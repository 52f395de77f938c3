"""
Resource identity context.

Carries the resources resolved by a scope controller into the execution
engine for one experiment, grouped by node. Built once per pass and only
read during execution.
"""

from dataclasses import dataclass, field, fields
from typing import Dict, Iterator, List, Tuple

IDENTIFIER_SEPARATOR = "/"

# Optional trailing components, in identifier order
_TRAILING = ("container_name", "container_id", "container_runtime")


@dataclass
class ContainerObjectMeta:
    """Identity of one matched node, pod or container."""

    namespace: str = ""
    node_name: str = ""
    pod_name: str = ""
    container_name: str = ""
    container_id: str = ""
    container_runtime: str = ""
    pod_uid: str = ""
    node_uid: str = ""
    id: str = ""

    def identifier(self) -> str:
        """
        Render the human readable key of this resource.

        Format: Namespace/NodeName/PodName[/ContainerName[/ContainerId[/ContainerRuntime]]]
        The first three components are always present (possibly empty);
        the trailing ones stop at the first empty component.
        """
        parts = [self.namespace, self.node_name, self.pod_name]
        for name in _TRAILING:
            value = getattr(self, name)
            if not value:
                break
            parts.append(value)
        return IDENTIFIER_SEPARATOR.join(parts)

    @classmethod
    def parse_identifier(cls, identifier: str) -> "ContainerObjectMeta":
        """Inverse of identifier(). Unknown trailing components are ignored."""
        meta = cls()
        if not identifier:
            return meta
        parts = identifier.split(IDENTIFIER_SEPARATOR, 5)
        names = ("namespace", "node_name", "pod_name") + _TRAILING
        for name, value in zip(names, parts):
            setattr(meta, name, value)
        return meta

    def copy(self, **changes) -> "ContainerObjectMeta":
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        values.update(changes)
        return ContainerObjectMeta(**values)


@dataclass
class NodeTargets:
    """Resources resolved on a single node."""

    node_uid: str = ""
    resources: List[ContainerObjectMeta] = field(default_factory=list)


class ResourceIdentityContext:
    """Mapping of node name to the resources resolved on it."""

    def __init__(self):
        self._nodes: Dict[str, NodeTargets] = {}

    def add(self, meta: ContainerObjectMeta) -> None:
        """Register a resolved resource under its node."""
        targets = self._nodes.get(meta.node_name)
        if targets is None:
            targets = NodeTargets(node_uid=meta.node_uid)
            self._nodes[meta.node_name] = targets
        targets.resources.append(meta)

    def nodes(self) -> Iterator[Tuple[str, NodeTargets]]:
        return iter(self._nodes.items())

    def resources(self) -> Tuple[ContainerObjectMeta, ...]:
        """All resources flattened in insertion order, grouped by node."""
        return tuple(meta for targets in self._nodes.values() for meta in targets.resources)

    def __len__(self) -> int:
        return sum(len(targets.resources) for targets in self._nodes.values())

    def __bool__(self) -> bool:
        return len(self) > 0
