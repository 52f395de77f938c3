"""
Inventory Module - Black Box Interface

Purpose: Read nodes and pods from the cluster, and apply the few writes of operator-side actions
Interface: get_node(), list_nodes(), get_pod(), list_pods(), find_tool_pod(),
           delete_pod(), patch_pod(), patch_node()
Hidden: Kubernetes client configuration, API error translation

Can be replaced with an informer cache or a fake for tests.
"""

from .inventory import KubernetesInventory, load_cluster_config

__all__ = ["KubernetesInventory", "load_cluster_config"]
