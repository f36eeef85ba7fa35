"""Cluster topology models and control plane access."""

from clusterbench.cluster.models import Cluster, Node, NodeRole, instancelist_to_set
from clusterbench.cluster.control import ClusterControl, HttpClusterControl, KILLED_EXIT_CODE

__all__ = [
    "Cluster",
    "Node",
    "NodeRole",
    "instancelist_to_set",
    "ClusterControl",
    "HttpClusterControl",
    "KILLED_EXIT_CODE",
]
