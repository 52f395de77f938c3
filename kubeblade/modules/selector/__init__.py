"""
Selector Module - Black Box Interface

Purpose: Resolve selection flags into a bounded set of nodes or pods
Interface: select(), get_resource_count(), random_selected(), parse_labels()
Hidden: Label parsing, grouping, sampling

Pure apart from inventory reads; can be swapped for an informer-cache backed
implementation without touching callers.
"""

from . import flags
from .selector import (
    check_namespace,
    check_query,
    get_resource_count,
    matches_labels,
    parse_labels,
    random_selected,
    resolve_bounds,
    select,
    to_label_selector,
)

__all__ = [
    "flags",
    "select",
    "get_resource_count",
    "random_selected",
    "resolve_bounds",
    "parse_labels",
    "to_label_selector",
    "matches_labels",
    "check_namespace",
    "check_query",
]
