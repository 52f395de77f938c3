"""Node scope controller."""

from typing import Dict, List

from kubeblade.modules.api import ContainerObjectMeta, Scope
from kubeblade.modules.selector import select

from .base import ScopeController


class NodeScopeController(ScopeController):
    """Targets nodes. Commands run on the node through its tool agent."""

    scope = Scope.NODE

    def resolve(self, experiment_name: str, flags: Dict[str, str]) -> List[ContainerObjectMeta]:
        nodes = select(Scope.NODE, flags, self.inventory)
        return [
            ContainerObjectMeta(node_name=node.metadata.name, node_uid=node.metadata.uid or "")
            for node in nodes
        ]
