"""
Resource selection.

Turns the selection flags of an experiment into a bounded, optionally
sampled list of live nodes or pods. Only read queries are issued against
the inventory.
"""

import logging
import math
import random
import sys
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from kubeblade.modules.api import InvalidQuery, NoMatch, Scope

from . import flags as f

logger = logging.getLogger(__name__)

UNBOUNDED = sys.maxsize

LabelRequirements = Dict[str, List[str]]


# Bounding


def _parse_bound(flags: Dict[str, str], name: str) -> Optional[int]:
    raw = (flags.get(name) or "").strip()
    if not raw:
        return None
    try:
        value = int(raw)
    except ValueError:
        raise InvalidQuery(f"{name} value must be an integer, got '{raw}'")
    if value < 0:
        raise InvalidQuery(f"{name} value must not be negative, got {value}")
    return value


def resolve_bounds(flags: Dict[str, str]) -> Tuple[Optional[int], Optional[int]]:
    """
    Read evict-count and evict-percent from the flags.

    Returns:
        (count, percent), each None when the flag is absent

    Raises:
        InvalidQuery: If a value is not a non-negative integer
    """
    return _parse_bound(flags, f.EVICT_COUNT), _parse_bound(flags, f.EVICT_PERCENT)


def get_resource_count(total: int, count: Optional[int] = None, percent: Optional[int] = None) -> int:
    """
    Resolve count and percent into a single inclusive cap.

    Logic:
        effective = min(count, round(percent / 100 * total)), with halves
        rounded away from zero, count defaulting to unbounded and percent
        to 100, then clamped to [0, total].

    Args:
        total: Number of candidate resources
        count: Absolute cap, None for unbounded
        percent: Percentage of total, None for 100

    Returns:
        Number of resources to keep
    """
    if total <= 0:
        return 0
    if count is None:
        count = UNBOUNDED
    if percent is None:
        percent = 100
    percent_count = int(math.floor(percent * total / 100 + 0.5))
    effective = min(count, percent_count)
    return max(0, min(effective, total))


def random_selected(items: Sequence[Any], k: int) -> List[Any]:
    """
    Pick k distinct items uniformly at random.

    Runs a Fisher-Yates shuffle over a copy of the input seeded from the
    wall clock, then keeps the first k.
    """
    pool = list(items)
    rng = random.Random(time.time_ns())
    for i in range(len(pool) - 1, 0, -1):
        j = rng.randint(0, i)
        pool[i], pool[j] = pool[j], pool[i]
    return pool[:max(0, min(k, len(pool)))]


# Labels


def parse_labels(text: str) -> LabelRequirements:
    """
    Parse 'k1=v1,k2=v2' into label requirements.

    Repeated keys accumulate values and match any of them. Entries
    without '=' are skipped with a warning.

    Raises:
        InvalidQuery: If the text is non-empty but yields no requirement
    """
    requirements: LabelRequirements = {}
    if not text:
        return requirements
    for entry in text.split(","):
        entry = entry.strip()
        if not entry:
            continue
        if "=" not in entry:
            logger.warning(f"Ignoring malformed label requirement '{entry}', expected key=value")
            continue
        key, value = (part.strip() for part in entry.split("=", 1))
        if not key:
            logger.warning(f"Ignoring label requirement with empty key '{entry}'")
            continue
        values = requirements.setdefault(key, [])
        if value not in values:
            values.append(value)
    if not requirements:
        raise InvalidQuery(f"illegal labels value '{text}', no key=value requirement found")
    return requirements


def to_label_selector(requirements: LabelRequirements) -> str:
    """Render requirements as a Kubernetes label selector string."""
    clauses = []
    for key, values in requirements.items():
        if len(values) == 1:
            clauses.append(f"{key}={values[0]}")
        else:
            clauses.append(f"{key} in ({','.join(values)})")
    return ",".join(clauses)


def matches_labels(labels: Optional[Dict[str, str]], requirements: LabelRequirements) -> bool:
    """Every requirement must hold; values of one key are alternatives."""
    labels = labels or {}
    return all(labels.get(key) in values for key, values in requirements.items())


# Selection


class _Accessor:
    """Inventory calls for one resource kind."""

    def __init__(self, get: Callable[[str], Any], list_: Callable[[Optional[str]], List[Any]], kind: str):
        self.get = get
        self.list = list_
        self.kind = kind


def _accessor(scope: str, inventory, namespace: Optional[str]) -> _Accessor:
    if scope == Scope.NODE:
        return _Accessor(inventory.get_node, inventory.list_nodes, "node")
    return _Accessor(
        lambda name: inventory.get_pod(namespace, name),
        lambda selector: inventory.list_pods(namespace, selector),
        "pod",
    )


def check_namespace(flags: Dict[str, str]) -> str:
    """
    Return the single namespace of a pod or container query.

    Raises:
        InvalidQuery: If the namespace is missing or lists several values
    """
    raw = (flags.get(f.NAMESPACE) or "").strip()
    if not raw:
        raise InvalidQuery(f"{f.NAMESPACE} value is required")
    if "," in raw:
        raise InvalidQuery(f"only one {f.NAMESPACE} is supported, got '{raw}'")
    return raw


def check_query(flags: Dict[str, str]) -> None:
    """Require at least one of names, labels, count or percent."""
    if not any((flags.get(name) or "").strip() for name in f.QUERY_FLAGS):
        raise InvalidQuery(
            f"must specify at least one of {', '.join('--' + name for name in f.QUERY_FLAGS)}"
        )


def _group_key(resource: Any, group_labels: List[str]) -> Tuple[str, ...]:
    labels = resource.metadata.labels or {}
    return tuple(labels.get(name, "") for name in group_labels)


def _bound(resources: List[Any], count: Optional[int], percent: Optional[int], randomize: bool) -> List[Any]:
    limit = get_resource_count(len(resources), count, percent)
    if randomize:
        return random_selected(resources, limit)
    return resources[:limit]


def select(scope: str, flags: Dict[str, str], inventory, require_query: bool = True) -> List[Any]:
    """
    Resolve the resources an experiment targets.

    Args:
        scope: node, pod or container (container resolves pods)
        flags: Flattened matcher flags of the experiment
        inventory: Cluster inventory providing get/list for nodes and pods
        require_query: When False, an experiment without names, labels,
            count or percent selects every resource in the namespace

    Returns:
        Matched resources, possibly empty when the cap resolves to zero

    Raises:
        InvalidQuery: Malformed or contradictory flags
        NoMatch: Nothing matched the names or labels
    """
    if require_query:
        check_query(flags)
    namespace = None if scope == Scope.NODE else check_namespace(flags)
    count, percent = resolve_bounds(flags)
    requirements = parse_labels(flags.get(f.LABELS, ""))
    names = f.split_values(flags.get(f.NAMES, ""))
    access = _accessor(scope, inventory, namespace)
    where = f" in namespace {namespace}" if namespace else ""

    if names:
        resources = []
        for name in names:
            resource = access.get(name)
            if resource is None:
                logger.warning(f"Can not find {access.kind} {name}{where}, skipping")
                continue
            if requirements and not matches_labels(resource.metadata.labels, requirements):
                logger.info(f"{access.kind} {name} does not match labels {flags.get(f.LABELS)}, skipping")
                continue
            resources.append(resource)
        if not resources:
            raise NoMatch(f"can not find {access.kind}s by names {names}{where}")
    elif requirements:
        resources = list(access.list(to_label_selector(requirements)))
        if not resources:
            raise NoMatch(f"can not find {access.kind}s by labels {flags.get(f.LABELS)}{where}")
    else:
        resources = list(access.list(None))
        if not resources:
            raise NoMatch(f"can not find any {access.kind}{where}")

    randomize = f.RANDOM_MODE in flags and (flags.get(f.RANDOM_MODE) or "true").lower() != "false"
    group_labels = f.split_values(flags.get(f.EVICT_GROUP, ""))
    if not group_labels:
        selected = _bound(resources, count, percent, randomize)
        logger.debug(f"Selected {len(selected)} of {len(resources)} {access.kind}s{where}")
        return selected

    groups: Dict[Tuple[str, ...], List[Any]] = {}
    for resource in resources:
        groups.setdefault(_group_key(resource, group_labels), []).append(resource)
    selected = []
    for key, members in groups.items():
        picked = _bound(members, count, percent, randomize)
        logger.debug(f"Group {dict(zip(group_labels, key))}: selected {len(picked)} of {len(members)}")
        selected.extend(picked)
    if not selected:
        raise NoMatch(f"no {access.kind} left after applying {f.EVICT_GROUP} {group_labels}{where}")
    return selected
