"""
Scope Module - Black Box Interface

Purpose: Resolve an experiment's targets for one resource kind and run it
Interface: ScopeController.create(), ScopeController.destroy()
Hidden: Selection, container matching, identity reconstruction on destroy

One controller per scope; the dispatch module picks which one runs.
"""

from .base import ScopeController, parse_container_id
from .container import ContainerScopeController
from .node import NodeScopeController
from .pod import PodScopeController

__all__ = [
    "ScopeController",
    "NodeScopeController",
    "PodScopeController",
    "ContainerScopeController",
    "parse_container_id",
]
