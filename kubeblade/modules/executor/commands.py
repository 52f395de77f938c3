"""
Blade command synthesis.

One synthesizer per command dialect. The dialect of a resource is decided
once by resolve_dialect() and looked up in a registration table, so the
engine never branches on runtime itself.
"""

import posixpath
import shlex
from enum import Enum
from typing import Dict, Protocol

from kubeblade.modules.api import CommandSynthesisError, ContainerObjectMeta, ExperimentSpec, Scope
from kubeblade.modules.selector import flags as f

DOCKER_RUNTIME = "docker"
CONTAINERD_RUNTIME = "containerd"

NETWORK_TARGET = "network"

_SANDBOX_LABELS = {
    DOCKER_RUNTIME: "io.kubernetes.docker.type=podsandbox",
    CONTAINERD_RUNTIME: "io.cri-containerd.kind=sandbox",
}


class CommandDialect(str, Enum):
    """Blade command families."""

    NODE = "node"
    DOCKER = "docker"
    CRI = "cri"


def resolve_dialect(scope: str, runtime: str, prefer_cri: bool = False) -> CommandDialect:
    """Pick the command dialect for a resource."""
    if scope == Scope.NODE:
        return CommandDialect.NODE
    if prefer_cri or runtime == CONTAINERD_RUNTIME:
        return CommandDialect.CRI
    return CommandDialect.DOCKER


def render_matchers(flags: Dict[str, str]) -> str:
    """
    Render fault parameters as blade flags, in declaration order.

    Selection and tool environment flags are dropped. A "true" or empty
    value renders as a bare switch.
    """
    rendered = []
    for name, value in flags.items():
        if name in f.EXCLUDED_FROM_COMMAND:
            continue
        if value == "" or value == "true":
            rendered.append(f"--{name}")
        else:
            rendered.append(f"--{name} {shlex.quote(value)}")
    return " ".join(rendered)


def blade_binary(flags: Dict[str, str], default_bin: str) -> str:
    """The blade binary, honouring a chaosblade-path override."""
    path = (flags.get(f.CHAOSBLADE_PATH) or "").strip()
    if path:
        return posixpath.join(path, "blade")
    return default_bin


def _join(*parts: str) -> str:
    return " ".join(part for part in parts if part)


class CommandSynthesizer(Protocol):
    """Builds the create and destroy command for one resource."""

    dialect: CommandDialect

    def create(self, blade_bin: str, spec: ExperimentSpec, meta: ContainerObjectMeta) -> str:
        ...

    def destroy(self, blade_bin: str, spec: ExperimentSpec, meta: ContainerObjectMeta) -> str:
        ...


class NodeCommandSynthesizer:
    """Commands run directly on the node by its tool agent."""

    dialect = CommandDialect.NODE

    def create(self, blade_bin: str, spec: ExperimentSpec, meta: ContainerObjectMeta) -> str:
        return _join(blade_bin, "create", spec.target, spec.action, render_matchers(spec.flags()))

    def destroy(self, blade_bin: str, spec: ExperimentSpec, meta: ContainerObjectMeta) -> str:
        if not meta.id:
            raise CommandSynthesisError(f"no experiment uid recorded for node {meta.node_name}")
        return _join(blade_bin, "destroy", shlex.quote(meta.id))


class ContainerCommandSynthesizer:
    """Commands addressing a container through the docker or cri executors."""

    def __init__(self, dialect: CommandDialect):
        self.dialect = dialect

    def _base(self, handle: str, blade_bin: str, spec: ExperimentSpec) -> str:
        return _join(
            blade_bin, handle, self.dialect.value, spec.target, spec.action, render_matchers(spec.flags())
        )

    def _address(self, command: str, meta: ContainerObjectMeta) -> str:
        if not meta.container_id:
            raise CommandSynthesisError(f"no container id for {meta.identifier()}")
        command = f"{command} --container-id {shlex.quote(meta.container_id)}"
        if self.dialect == CommandDialect.CRI and meta.container_runtime:
            command = f"{command} --container-runtime {meta.container_runtime}"
        return command

    def create(self, blade_bin: str, spec: ExperimentSpec, meta: ContainerObjectMeta) -> str:
        return self._address(self._base("create", blade_bin, spec), meta)

    def destroy(self, blade_bin: str, spec: ExperimentSpec, meta: ContainerObjectMeta) -> str:
        command = self._base("destroy", blade_bin, spec)
        if spec.target == NETWORK_TARGET:
            # Network faults are installed in the pod sandbox
            sandbox = _SANDBOX_LABELS.get(meta.container_runtime)
            if sandbox is None:
                raise CommandSynthesisError(f"unsupported container runtime {meta.container_runtime}")
            selector = ",".join([
                f"io.kubernetes.pod.name={meta.pod_name}",
                f"io.kubernetes.pod.namespace={meta.namespace}",
                sandbox,
            ])
            return f"{command} --container-label-selector {selector} --container-runtime {meta.container_runtime}"
        command = self._address(command, meta)
        if meta.id:
            command = f"{command} --uid {shlex.quote(meta.id)}"
        return command


def default_synthesizers() -> Dict[CommandDialect, CommandSynthesizer]:
    """Registration table of the built-in dialects."""
    return {
        CommandDialect.NODE: NodeCommandSynthesizer(),
        CommandDialect.DOCKER: ContainerCommandSynthesizer(CommandDialect.DOCKER),
        CommandDialect.CRI: ContainerCommandSynthesizer(CommandDialect.CRI),
    }
