"""
Executor Module - Black Box Interface

Purpose: Run blade create/destroy commands for resolved resources, or carry
         out pod delete, pod fail and node cordon through the Kubernetes API
Interface: ExecutionEngine.execute(), command synthesizers, cluster actions, parallelize()
Hidden: Command dialects, tool pod addressing, worker pool, result folding

Can be replaced with a different agent transport without touching scope controllers.
"""

from .actions import (
    FAIL_POD_ANNOTATION_PREFIX,
    FAULT_IMAGE_SUFFIX,
    ClusterAction,
    CordonNodeAction,
    DeletePodAction,
    FailPodAction,
    default_actions,
)
from .commands import (
    CommandDialect,
    CommandSynthesizer,
    ContainerCommandSynthesizer,
    NodeCommandSynthesizer,
    blade_binary,
    default_synthesizers,
    render_matchers,
    resolve_dialect,
)
from .engine import RESOURCES_NOT_FOUND, SEE_RESOURCE_STATUS, ExecutionEngine
from .parallelizer import MAX_PARALLELISM, ResultAccumulator, parallelize, worker_count

__all__ = [
    "ExecutionEngine",
    "RESOURCES_NOT_FOUND",
    "SEE_RESOURCE_STATUS",
    "CommandDialect",
    "CommandSynthesizer",
    "NodeCommandSynthesizer",
    "ContainerCommandSynthesizer",
    "default_synthesizers",
    "ClusterAction",
    "DeletePodAction",
    "FailPodAction",
    "CordonNodeAction",
    "default_actions",
    "FAIL_POD_ANNOTATION_PREFIX",
    "FAULT_IMAGE_SUFFIX",
    "resolve_dialect",
    "render_matchers",
    "blade_binary",
    "parallelize",
    "worker_count",
    "ResultAccumulator",
    "MAX_PARALLELISM",
]
