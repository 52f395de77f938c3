"""
Shared pytest fixtures for KubeBlade tests.

This module provides common fixtures including:
- FakeInventory: In-memory nodes, pods and tool agent pods
- ExecMocker: Mock exec into tool pods with canned agent replies
- InMemoryStore: ChaosBlade persistence with resourceVersion conflicts
"""

import copy
import os
import sys
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Pattern, Tuple, Union

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from fixtures.cluster_objects import agent_failure, make_tool_pod, parse_selector

from kubeblade.config.provider import BladeConfig, ExecutionConfig
from kubeblade.modules.api import ChaosBlade, ConflictError, RemoteOperationFailed, TargetVanished
from kubeblade.modules.channel import ExecResult, decode_response
from kubeblade.modules.dispatch import build_dispatcher
from kubeblade.modules.executor import ExecutionEngine


# =============================================================================
# Inventory
# =============================================================================

class FakeInventory:
    """
    Cluster inventory over in-memory kubernetes client models.

    Implements the same surface as KubernetesInventory, including label
    selector filtering. Writes are applied to the stored models and
    recorded in order.
    """

    def __init__(self):
        self.nodes = {}
        self.pods = {}
        self.tool_pods = {}
        self.list_calls: List[Tuple[str, Optional[str], Optional[str]]] = []
        self.writes: List[Tuple[str, str, Optional[dict]]] = []

    def add_node(self, node, with_tool_pod: bool = True) -> "FakeInventory":
        self.nodes[node.metadata.name] = node
        if with_tool_pod:
            self.tool_pods[node.metadata.name] = make_tool_pod(node.metadata.name)
        return self

    def add_pod(self, pod) -> "FakeInventory":
        self.pods[(pod.metadata.namespace, pod.metadata.name)] = pod
        node_name = pod.spec.node_name
        if node_name and node_name not in self.tool_pods:
            self.tool_pods[node_name] = make_tool_pod(node_name)
        return self

    def remove_pod(self, namespace: str, name: str) -> None:
        self.pods.pop((namespace, name), None)

    @staticmethod
    def _matches(obj, selector: Optional[str]) -> bool:
        labels = obj.metadata.labels or {}
        return all(labels.get(key) in values for key, values in parse_selector(selector))

    def get_node(self, name: str):
        return self.nodes.get(name)

    def list_nodes(self, label_selector: Optional[str] = None):
        self.list_calls.append(("node", None, label_selector))
        return [node for node in self.nodes.values() if self._matches(node, label_selector)]

    def get_pod(self, namespace: str, name: str):
        return self.pods.get((namespace, name))

    def list_pods(self, namespace: str, label_selector: Optional[str] = None):
        self.list_calls.append(("pod", namespace, label_selector))
        return [
            pod for (ns, _), pod in self.pods.items()
            if ns == namespace and self._matches(pod, label_selector)
        ]

    def find_tool_pod(self, node_name: str, namespace: str, label_selector: str):
        return self.tool_pods.get(node_name)

    def delete_pod(self, namespace: str, name: str) -> None:
        self.writes.append(("delete", f"{namespace}/{name}", None))
        if (namespace, name) not in self.pods:
            raise TargetVanished(f"pod {namespace}/{name} not found")
        self.remove_pod(namespace, name)

    def patch_pod(self, namespace: str, name: str, body: dict) -> None:
        """Merge annotations (None removes a key) and container images by name."""
        self.writes.append(("patch", f"{namespace}/{name}", body))
        pod = self.pods.get((namespace, name))
        if pod is None:
            raise TargetVanished(f"pod {namespace}/{name} not found")
        annotations = dict(pod.metadata.annotations or {})
        for key, value in (body.get("metadata") or {}).get("annotations", {}).items():
            if value is None:
                annotations.pop(key, None)
            else:
                annotations[key] = value
        pod.metadata.annotations = annotations
        images = {c["name"]: c["image"] for c in (body.get("spec") or {}).get("containers", [])}
        for container in pod.spec.containers:
            if container.name in images:
                container.image = images[container.name]

    def patch_node(self, name: str, body: dict) -> None:
        self.writes.append(("patch", name, body))
        node = self.nodes.get(name)
        if node is None:
            raise TargetVanished(f"node {name} not found")
        node.spec.unschedulable = body["spec"]["unschedulable"]


@pytest.fixture
def fake_inventory():
    return FakeInventory()


# =============================================================================
# Exec Mocking Infrastructure
# =============================================================================

@dataclass
class ExecCall:
    """Record of a command executed in a tool pod during testing."""
    pod_name: str
    namespace: str
    container: str
    command: str
    matched_pattern: Optional[str] = None


class ExecMocker:
    """
    Mock exec into tool agent pods with pattern-matched agent replies.

    A reply is either the raw text the agent prints (decoded exactly as
    ExecChannel decodes it) or an exception instance to raise.

    Usage:
        def test_create(exec_mocker, engine):
            exec_mocker.register("create cpu fullload", agent_success("abc"))
            ...
            assert exec_mocker.was_called_with("--container-id")
    """

    def __init__(self):
        self._responses: List[Tuple[Union[str, Pattern], Union[str, Exception]]] = []
        self._call_history: List[ExecCall] = []
        self._lock = threading.Lock()
        self._default_response: Union[str, Exception] = agent_failure("mock not configured for this command")

    def register(self, pattern: Union[str, Pattern], response: Union[str, Exception]) -> "ExecMocker":
        """
        Register a reply for commands matching the pattern.

        Args:
            pattern: String (substring match) or compiled regex
            response: Agent output text, or an exception to raise

        Returns:
            self for chaining
        """
        self._responses.append((pattern, response))
        return self

    def set_default_response(self, response: Union[str, Exception]) -> "ExecMocker":
        self._default_response = response
        return self

    def exec(self, pod_name: str, namespace: str, container: str, command: str, timeout: int = 30) -> ExecResult:
        matched_pattern = None
        response = self._default_response
        for pattern, candidate in self._responses:
            if isinstance(pattern, str):
                if pattern in command:
                    matched_pattern, response = pattern, candidate
                    break
            elif pattern.search(command):
                matched_pattern, response = pattern.pattern, candidate
                break

        with self._lock:
            self._call_history.append(ExecCall(pod_name, namespace, container, command, matched_pattern))

        if isinstance(response, Exception):
            raise response
        return decode_response(response, pod_name)

    @property
    def calls(self) -> List[ExecCall]:
        return list(self._call_history)

    @property
    def call_count(self) -> int:
        return len(self._call_history)

    def was_called_with(self, pattern: str) -> bool:
        """Check if any command contained the given pattern."""
        return any(pattern in call.command for call in self._call_history)

    def get_calls_matching(self, pattern: str) -> List[ExecCall]:
        return [call for call in self._call_history if pattern in call.command]

    def reset(self):
        """Clear call history (but keep registered responses)."""
        self._call_history = []


@pytest.fixture
def exec_mocker():
    return ExecMocker()


@pytest.fixture
def unreachable_agent():
    """An exec mocker whose every call fails at the transport level."""
    mocker = ExecMocker()
    mocker.set_default_response(RemoteOperationFailed("exec in pods/chaosblade-tool failed: Connection refused"))
    return mocker


# =============================================================================
# Engine and Dispatcher
# =============================================================================

@pytest.fixture
def blade_config():
    return BladeConfig()


@pytest.fixture
def execution_config():
    return ExecutionConfig(max_workers=4, exec_timeout=5)


@pytest.fixture
def engine(fake_inventory, exec_mocker, blade_config, execution_config):
    return ExecutionEngine(fake_inventory, exec_mocker, blade_config, execution_config)


@pytest.fixture
def dispatcher(fake_inventory, engine, blade_config, execution_config):
    return build_dispatcher(fake_inventory, engine, blade_config, execution_config)


# =============================================================================
# ChaosBlade Store
# =============================================================================

class InMemoryStore:
    """
    ChaosBlade store keeping raw objects like the API server does.

    update() writes metadata and spec, update_status() writes status, both
    with resourceVersion checks. Removing the last finalizer of an object
    with a deletion timestamp deletes it.
    """

    def __init__(self):
        self.objects: Dict[str, dict] = {}
        self._version = 100
        self.fail_status_writes = 0
        self.status_writes: List[Tuple[str, str]] = []
        self.updates: List[str] = []

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    def put(self, blade: ChaosBlade) -> ChaosBlade:
        raw = blade.to_dict()
        raw["metadata"]["resourceVersion"] = self._next_version()
        self.objects[blade.name] = raw
        return ChaosBlade.from_dict(copy.deepcopy(raw))

    def bump(self, name: str) -> None:
        """Simulate a concurrent writer."""
        self.objects[name]["metadata"]["resourceVersion"] = self._next_version()

    def get(self, name: str) -> Optional[ChaosBlade]:
        raw = self.objects.get(name)
        return ChaosBlade.from_dict(copy.deepcopy(raw)) if raw else None

    def list(self):
        return [ChaosBlade.from_dict(copy.deepcopy(raw)) for raw in self.objects.values()], str(self._version)

    def _check_version(self, blade: ChaosBlade) -> Optional[dict]:
        stored = self.objects.get(blade.name)
        if stored is None:
            return None
        if stored["metadata"]["resourceVersion"] != blade.metadata.resource_version:
            raise ConflictError(f"update chaosblade {blade.name} conflicted: Conflict")
        return stored

    def update(self, blade: ChaosBlade) -> Optional[ChaosBlade]:
        stored = self._check_version(blade)
        if stored is None:
            return None
        raw = blade.to_dict()
        self.updates.append(blade.name)
        if raw["metadata"].get("deletionTimestamp") and not raw["metadata"].get("finalizers"):
            del self.objects[blade.name]
            return None
        stored["metadata"] = raw["metadata"]
        stored["spec"] = raw["spec"]
        stored["metadata"]["resourceVersion"] = self._next_version()
        return self.get(blade.name)

    def update_status(self, blade: ChaosBlade) -> Optional[ChaosBlade]:
        if self.fail_status_writes > 0:
            self.fail_status_writes -= 1
            self.bump(blade.name)
        stored = self._check_version(blade)
        if stored is None:
            return None
        stored["status"] = blade.to_dict()["status"]
        stored["metadata"]["resourceVersion"] = self._next_version()
        self.status_writes.append((blade.name, blade.phase.value))
        return self.get(blade.name)

    def set_annotation(self, name: str, key: str, value: Optional[str]) -> Optional[ChaosBlade]:
        stored = self.objects.get(name)
        if stored is None:
            return None
        annotations = stored["metadata"].setdefault("annotations", {})
        if value is None:
            annotations.pop(key, None)
        else:
            annotations[key] = value
        stored["metadata"]["resourceVersion"] = self._next_version()
        return self.get(name)

    def remove_annotation(self, name: str, key: str) -> Optional[ChaosBlade]:
        return self.set_annotation(name, key, None)

    def request_deletion(self, name: str) -> None:
        """Simulate kubectl delete: finalizers keep the object around."""
        stored = self.objects[name]
        if not stored["metadata"].get("finalizers"):
            del self.objects[name]
            return
        stored["metadata"]["deletionTimestamp"] = "2024-05-01T10:00:00Z"
        stored["metadata"]["resourceVersion"] = self._next_version()


@pytest.fixture
def store():
    return InMemoryStore()


# =============================================================================
# Test Markers Configuration
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: Tests that take a long time to run"
    )
