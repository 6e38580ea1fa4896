"""Orchestration of a cluster of search engine nodes.

The `ClusterRunner` builds the cluster: it creates node workspaces, selects HTTP ports,
merges node settings and starts the nodes through the `NodeSupervisor`.
"""

from opensearch_runner.cluster_management.common import AllNodesClosedError
from opensearch_runner.cluster_management.common import OperationFailure
from opensearch_runner.cluster_management.common import RunnerError
from opensearch_runner.cluster_management.configs import ClusterConfig
from opensearch_runner.cluster_management.configs import ConfigError
from opensearch_runner.cluster_management.configs import Configs
from opensearch_runner.cluster_management.health import HealthStatus
from opensearch_runner.cluster_management.health import HealthTimeoutError
from opensearch_runner.cluster_management.manager import ClusterRunner
from opensearch_runner.cluster_management.nodes import NodeStartError
from opensearch_runner.cluster_management.nodes import ShutdownError
from opensearch_runner.cluster_management.plugins import PluginNotFoundError
from opensearch_runner.cluster_management.ports import PortExhaustedError
from opensearch_runner.cluster_management.settings import Settings
from opensearch_runner.cluster_management.workspace import CleanupError
from opensearch_runner.cluster_management.workspace import ProvisioningError

__all__ = [
    "AllNodesClosedError",
    "CleanupError",
    "ClusterConfig",
    "ClusterRunner",
    "ConfigError",
    "Configs",
    "HealthStatus",
    "HealthTimeoutError",
    "NodeStartError",
    "OperationFailure",
    "PluginNotFoundError",
    "PortExhaustedError",
    "ProvisioningError",
    "RunnerError",
    "Settings",
    "ShutdownError",
]
