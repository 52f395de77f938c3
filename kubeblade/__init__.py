"""
Kubeblade - Chaos Experiment Orchestrator for Kubernetes

Turns ChaosBlade custom resources into fault-injection operations on
nodes, pods and containers, and reconciles them until torn down.

Architecture:
- Each module is self-contained with clear interfaces
- Modules are completely replaceable
- No module knows the internals of another
- All communication through defined interfaces

Modules:
- api: Shared data models and error taxonomy
- config: Process configuration contract
- selector: Resource selection and sampling
- inventory: Cluster node/pod lookups
- channel: Remote command execution in tool pods
- executor: Command synthesis and bounded parallel execution
- scope: Node, pod and container scope controllers
- dispatch: Scope routing
- storage: ChaosBlade resource persistence
- reconciler: Experiment state machine and change admission
- controller: Watch loop, work queue and reconcile workers
"""

__version__ = "1.0.0"
