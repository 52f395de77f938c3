"""ChaosBlade persistence over the Kubernetes custom objects API."""

import logging
from typing import Iterator, List, Optional, Tuple

from kubernetes import client, watch
from kubernetes.client.rest import ApiException

from kubeblade.modules.api import GROUP, PLURAL, VERSION, ChaosBlade, ConflictError

logger = logging.getLogger(__name__)


class ChaosBladeStore:
    """
    Read, update and watch cluster scoped ChaosBlade objects.

    Updates carry the object's resourceVersion; a stale write raises
    ConflictError and must be retried by the caller from a fresh read.
    """

    def __init__(self, custom_api: Optional[client.CustomObjectsApi] = None, request_timeout: int = 30):
        self.custom_api = custom_api or client.CustomObjectsApi()
        self.request_timeout = request_timeout

    def _translate(self, e: ApiException, action: str, name: str):
        if e.status == 409:
            raise ConflictError(f"{action} chaosblade {name} conflicted: {e.reason}")
        raise e

    def get(self, name: str) -> Optional[ChaosBlade]:
        """Fetch an object, None if it does not exist."""
        try:
            raw = self.custom_api.get_cluster_custom_object(
                GROUP, VERSION, PLURAL, name, _request_timeout=self.request_timeout
            )
        except ApiException as e:
            if e.status == 404:
                return None
            raise
        return ChaosBlade.from_dict(raw)

    def list(self) -> Tuple[List[ChaosBlade], str]:
        """List all objects together with the list resourceVersion."""
        raw = self.custom_api.list_cluster_custom_object(
            GROUP, VERSION, PLURAL, _request_timeout=self.request_timeout
        )
        items = [ChaosBlade.from_dict(item) for item in raw.get("items") or []]
        return items, (raw.get("metadata") or {}).get("resourceVersion", "")

    def update(self, blade: ChaosBlade) -> Optional[ChaosBlade]:
        """
        Replace the object (metadata and spec).

        Returns:
            The stored object, or None if it was deleted meanwhile

        Raises:
            ConflictError: If the object changed since it was read
        """
        try:
            raw = self.custom_api.replace_cluster_custom_object(
                GROUP, VERSION, PLURAL, blade.name, blade.to_dict(),
                _request_timeout=self.request_timeout,
            )
        except ApiException as e:
            if e.status == 404:
                return None
            self._translate(e, "update", blade.name)
        return ChaosBlade.from_dict(raw)

    def update_status(self, blade: ChaosBlade) -> Optional[ChaosBlade]:
        """
        Replace the status sub-resource.

        Raises:
            ConflictError: If the object changed since it was read
        """
        try:
            raw = self.custom_api.replace_cluster_custom_object_status(
                GROUP, VERSION, PLURAL, blade.name, blade.to_dict(),
                _request_timeout=self.request_timeout,
            )
        except ApiException as e:
            if e.status == 404:
                return None
            self._translate(e, "update status of", blade.name)
        return ChaosBlade.from_dict(raw)

    def set_annotation(self, name: str, key: str, value: Optional[str]) -> Optional[ChaosBlade]:
        """Set an annotation with a merge patch; a None value removes it."""
        body = {"metadata": {"annotations": {key: value}}}
        try:
            raw = self.custom_api.patch_cluster_custom_object(
                GROUP, VERSION, PLURAL, name, body, _request_timeout=self.request_timeout
            )
        except ApiException as e:
            if e.status == 404:
                return None
            self._translate(e, "annotate", name)
        return ChaosBlade.from_dict(raw)

    def remove_annotation(self, name: str, key: str) -> Optional[ChaosBlade]:
        return self.set_annotation(name, key, None)

    def watch(self, resource_version: str, timeout_seconds: int = 300) -> Iterator[Tuple[str, dict]]:
        """
        Stream (event type, raw object) pairs starting after resource_version.

        The stream ends when the server closes it after timeout_seconds.
        """
        watcher = watch.Watch()
        try:
            for event in watcher.stream(
                self.custom_api.list_cluster_custom_object,
                GROUP,
                VERSION,
                PLURAL,
                resource_version=resource_version,
                timeout_seconds=timeout_seconds,
            ):
                yield event["type"], event["object"]
        finally:
            watcher.stop()
