"""Container scope controller."""

import logging
from typing import Dict, List, Optional

from kubeblade.modules.api import ContainerObjectMeta, InvalidQuery, NoMatch, Scope
from kubeblade.modules.selector import flags as f
from kubeblade.modules.selector import select

from .base import is_running
from .pod import PodScopeController, pod_meta

logger = logging.getLogger(__name__)


def _full_id(raw: str) -> str:
    return raw.split("://", 1)[1] if raw and "://" in raw else (raw or "")


def _flag(flags: Dict[str, str], name: str) -> str:
    return (flags.get(name) or "").strip()


class ContainerScopeController(PodScopeController):
    """
    Targets individual containers of the selected pods.

    Containers are picked by container-ids (id prefix match), else by
    container-names (exact match), else by container-index (position in
    the pod's container statuses). Ids and names together are rejected.
    """

    scope = Scope.CONTAINER

    def check_flags(self, flags: Dict[str, str]) -> Optional[int]:
        """
        Validate the container flags before any inventory read.

        Returns:
            The container index when neither ids nor names are given, else None
        """
        has_ids = bool(_flag(flags, f.CONTAINER_IDS))
        has_names = bool(_flag(flags, f.CONTAINER_NAMES))
        index_value = _flag(flags, f.CONTAINER_INDEX)
        if has_ids and has_names:
            raise InvalidQuery(f"only one of {f.CONTAINER_IDS} and {f.CONTAINER_NAMES} can be specified")
        if has_ids or has_names:
            return None
        if not index_value:
            raise InvalidQuery(
                f"one of {f.CONTAINER_IDS}, {f.CONTAINER_NAMES} or {f.CONTAINER_INDEX} is required"
            )
        try:
            index = int(index_value)
        except ValueError:
            raise InvalidQuery(f"illegal {f.CONTAINER_INDEX} value '{index_value}', expected an integer")
        if index < 0:
            raise InvalidQuery(f"illegal {f.CONTAINER_INDEX} value '{index_value}', must not be negative")
        return index

    def resolve(self, experiment_name: str, flags: Dict[str, str]) -> List[ContainerObjectMeta]:
        index = self.check_flags(flags)
        expected_ids = f.split_values(flags.get(f.CONTAINER_IDS, ""))
        expected_names = set(f.split_values(flags.get(f.CONTAINER_NAMES, "")))

        pods = select(Scope.POD, flags, self.inventory, require_query=False)
        resolved = []
        for pod in pods:
            statuses = (pod.status.container_statuses if pod.status else None) or []
            if index is not None:
                candidates = self._by_index(pod, statuses, index)
            elif expected_ids:
                candidates = [
                    status for status in statuses
                    if _full_id(status.container_id)
                    and any(_full_id(status.container_id).startswith(prefix) for prefix in expected_ids)
                ]
            else:
                candidates = [status for status in statuses if status.name in expected_names]
            for container_status in candidates:
                if not is_running(container_status):
                    raise InvalidQuery(
                        f"container {container_status.name} in pod {pod.metadata.namespace}/"
                        f"{pod.metadata.name} is not running"
                    )
                resolved.append(pod_meta(pod, container_status))

        if not resolved:
            if index is not None:
                wanted = f"{f.CONTAINER_INDEX} {index}"
            else:
                wanted = expected_ids or sorted(expected_names)
            raise NoMatch(f"can not find containers {wanted} in {len(pods)} selected pods")
        logger.debug(f"[{experiment_name}] matched {len(resolved)} containers in {len(pods)} pods")
        return resolved

    @staticmethod
    def _by_index(pod, statuses, index: int) -> list:
        if not statuses:
            return []
        if index >= len(statuses):
            raise InvalidQuery(
                f"{f.CONTAINER_INDEX} {index} is out of bound, pod {pod.metadata.namespace}/"
                f"{pod.metadata.name} has {len(statuses)} containers"
            )
        return [statuses[index]]
