"""High-level management of a cluster of search engine nodes.

This module provides the `ClusterRunner` class, which is the main interface for building a
cluster, accessing its nodes and issuing cluster operations. The `ClusterRunner` is
responsible for creating the cluster base directory, starting the nodes through the
`NodeSupervisor`, waiting for the cluster health and finally closing the nodes and wiping the
workspace.

Every cluster operation prepares a default request, which can be replaced by the `builder`
callback. The callback gets the prepared request and returns the request to execute:

>>> runner.search("books", builder=lambda r: r.update_body(size=100))  # doctest: +SKIP

When an operation doesn't succeed, the failure is reported according to the
`print_on_failure` setting: an `OperationFailure` is raised, or the message is just printed.
"""

import dataclasses
import logging
import pathlib as pl
import typing as tp

from opensearch_runner.cluster_management import common
from opensearch_runner.cluster_management import configs
from opensearch_runner.cluster_management import health
from opensearch_runner.cluster_management import nodes
from opensearch_runner.cluster_management import plugins as node_plugins
from opensearch_runner.cluster_management import settings as node_settings
from opensearch_runner.cluster_management import workspace
from opensearch_runner.engine import client as engine_client
from opensearch_runner.engine import node as engine_node
from opensearch_runner.utils import configuration
from opensearch_runner.utils import framework_log
from opensearch_runner.utils import locking
from opensearch_runner.utils import temptools

LOGGER = logging.getLogger(__name__)

T = tp.TypeVar("T")


def _apply(
    request: engine_client.EngineRequest,
    builder: engine_client.RequestBuilder | None,
    default: engine_client.RequestBuilder,
) -> engine_client.EngineRequest:
    return (builder or default)(request)


def _format_shard_failures(response: engine_client.EngineResponse) -> str:
    return "".join(f"{f}\n" for f in response.shard_failures)


class ClusterRunner:
    """Build and manage a cluster of search engine nodes."""

    def __init__(
        self,
        config: configs.ClusterConfig | None = None,
        *,
        node_factory: engine_node.NodeFactory = engine_node.ProcessNode,
    ) -> None:
        self.config = config or configs.ClusterConfig()
        self.node_factory = node_factory

        self.base_path: pl.Path | None = None
        self._settings_callback: node_settings.SettingsCallback | None = None
        self._framework_logger: logging.Logger | None = None
        self.supervisor = nodes.NodeSupervisor(node_factory, print_func=self.print)

    def __repr__(self) -> str:
        return (
            f"<{self.__class__.__name__}: {self.config.cluster_name}, "
            f"nodes={self.node_size}, base_path={self.base_path}>"
        )

    def __enter__(self) -> "ClusterRunner":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    @property
    def cluster_name(self) -> str:
        return self.config.cluster_name

    @property
    def node_size(self) -> int:
        return self.supervisor.size

    def print(self, line: str) -> None:
        """Print the line to stdout, or log it when `use_logger` is set."""
        if self.config.use_logger:
            LOGGER.info(line)
        else:
            print(line)  # noqa: T201

    def report_failure(self, error: common.OperationFailure) -> None:
        if not self.config.print_on_failure:
            raise error
        self.print(str(error))

    def on_failure(self, message: str, response: tp.Any = None) -> None:
        self.report_failure(common.OperationFailure(message, response=response))

    def on_build(self, callback: node_settings.SettingsCallback) -> "ClusterRunner":
        """Set callback for putting custom settings of each node.

        The callback gets the node ordinal and the node settings. The settings it puts are
        never overwritten by the runner.
        """
        self._settings_callback = callback
        return self

    def build(
        self, config: configs.ClusterConfig | tp.Sequence[str] | None = None
    ) -> "ClusterRunner":
        """Provision and start all nodes of the cluster.

        Args:
            config: Cluster configuration, or command line style arguments to create it from.
                The configuration passed to the constructor is used when not set.
        """
        if isinstance(config, configs.ClusterConfig):
            self.config = config
        elif config is not None:
            self.config = configs.ClusterConfig.from_args(config)

        settings_callback = self.config.settings_callback or self._settings_callback

        if self.config.base_path:
            self.base_path = pl.Path(self.config.base_path).expanduser().absolute()
            workspace.create_dir(self.base_path, log_func=self.print)
        else:
            self.base_path = temptools.create_cluster_dir()

        modules = node_plugins.resolve_modules(self.config.module_types)
        plugins = node_plugins.resolve_plugins(self.config.plugin_types)

        self._framework_logger = framework_log.framework_logger(self.base_path)
        self.supervisor.framework_logger = self._framework_logger

        self.print("----------------------------------------")
        self.print(f"Cluster Name: {self.config.cluster_name}")
        self.print(f"Base Path:    {self.base_path}")
        self.print(f"Num Of Node:  {self.config.num_of_node}")
        self.print("----------------------------------------")

        config = self.config
        if settings_callback is not config.settings_callback:
            config = dataclasses.replace(config, settings_callback=settings_callback)

        with locking.ports_lock():
            self.supervisor.start_all(
                config, base_path=self.base_path, modules=modules, plugins=plugins
            )

        return self

    def close(self) -> None:
        """Close all nodes."""
        self.supervisor.shutdown_all(timeout=self.config.shutdown_timeout)
        self.print("Closed all nodes.")

    def is_closed(self) -> bool:
        return self.supervisor.is_all_closed()

    def clean(self) -> None:
        """Delete the cluster base directory."""
        if self._framework_logger is not None:
            framework_log.close_framework_logger(self._framework_logger)
        if self.base_path is None:
            return

        workspace.clean(self.base_path)
        self.print(f"Deleted {self.base_path}")

    # Nodes

    def get_node(self, i: int) -> engine_node.Node | None:
        return self.supervisor.get(i)

    def get_node_by_name(self, name: str | None) -> engine_node.Node | None:
        return self.supervisor.get_by_name(name)

    def get_node_index(self, node: engine_node.Node) -> int:
        return self.supervisor.index_of(node)

    def start_node(self, i: int) -> bool:
        """Start the closed node at index `i` again."""
        return self.supervisor.restart(i)

    def node(self) -> engine_node.Node:
        """Return the first node that is not closed."""
        return self.supervisor.any_available()

    def cluster_manager_node(self) -> engine_node.Node | None:
        return self.supervisor.cluster_manager_node()

    def non_cluster_manager_node(self) -> engine_node.Node | None:
        return self.supervisor.non_cluster_manager_node()

    def client(self) -> engine_client.EngineClient:
        return self.node().client()

    def get_instance(self, service_cls: type[T]) -> T:
        """Get service instance from the cluster manager node."""
        with self.supervisor.lock:
            node = self.cluster_manager_node() or self.node()
            return node.get_instance(service_cls)

    def cluster_service(self) -> engine_node.ClusterService:
        return self.get_instance(engine_node.ClusterService)

    # Health

    def ensure_green(self, *indices: str) -> health.HealthStatus | None:
        return health.wait_for(
            self.client(),
            status=health.HealthStatus.GREEN,
            indices=indices,
            timeout=configuration.HEALTH_TIMEOUT,
            on_failure=self.report_failure,
        )

    def ensure_yellow(self, *indices: str) -> health.HealthStatus | None:
        return health.wait_for(
            self.client(),
            status=health.HealthStatus.YELLOW,
            indices=indices,
            timeout=configuration.HEALTH_TIMEOUT,
            on_failure=self.report_failure,
        )

    def wait_for_relocation(self) -> health.HealthStatus | None:
        return health.wait_for_relocation(
            self.client(), timeout=configuration.HEALTH_TIMEOUT, on_failure=self.report_failure
        )

    # Operations

    def _execute_on_shards(
        self, request: engine_client.EngineRequest
    ) -> engine_client.EngineResponse:
        self.wait_for_relocation()
        response = self.client().execute(request)
        if response.shard_failures:
            self.on_failure(_format_shard_failures(response), response)
        return response

    def _execute_acknowledged(
        self, request: engine_client.EngineRequest, failure_msg: str
    ) -> engine_client.EngineResponse:
        response = self.client().execute(request)
        if not response.acknowledged:
            self.on_failure(failure_msg, response)
        return response

    def flush(
        self, force: bool = True, *, builder: engine_client.RequestBuilder | None = None
    ) -> engine_client.EngineResponse:
        request = _apply(
            self.client().prepare_flush(),
            builder,
            lambda r: r.set_params(wait_if_ongoing=True, force=force),
        )
        return self._execute_on_shards(request)

    def refresh(
        self, *, builder: engine_client.RequestBuilder | None = None
    ) -> engine_client.EngineResponse:
        request = _apply(self.client().prepare_refresh(), builder, lambda r: r)
        return self._execute_on_shards(request)

    def upgrade(
        self,
        only_ancient_segments: bool = True,
        *,
        builder: engine_client.RequestBuilder | None = None,
    ) -> engine_client.EngineResponse:
        request = _apply(
            self.client().prepare_upgrade(),
            builder,
            lambda r: r.set_param("only_ancient_segments", only_ancient_segments),
        )
        return self._execute_on_shards(request)

    def force_merge(
        self,
        max_num_segments: int = -1,
        only_expunge_deletes: bool = False,
        flush: bool = True,
        *,
        builder: engine_client.RequestBuilder | None = None,
    ) -> engine_client.EngineResponse:
        # Negative number of segments leaves the decision to the engine
        request = _apply(
            self.client().prepare_force_merge(),
            builder,
            lambda r: r.set_params(
                max_num_segments=max_num_segments if max_num_segments >= 0 else None,
                only_expunge_deletes=only_expunge_deletes,
                flush=flush,
            ),
        )
        return self._execute_on_shards(request)

    def open_index(
        self, index: str, *, builder: engine_client.RequestBuilder | None = None
    ) -> engine_client.EngineResponse:
        request = _apply(self.client().prepare_open_index(index), builder, lambda r: r)
        return self._execute_acknowledged(request, f"Failed to open {index}.")

    def close_index(
        self, index: str, *, builder: engine_client.RequestBuilder | None = None
    ) -> engine_client.EngineResponse:
        request = _apply(self.client().prepare_close_index(index), builder, lambda r: r)
        return self._execute_acknowledged(request, f"Failed to close {index}.")

    def create_index(
        self,
        index: str,
        settings: dict[str, tp.Any] | None = None,
        *,
        builder: engine_client.RequestBuilder | None = None,
    ) -> engine_client.EngineResponse:
        request = _apply(
            self.client().prepare_create_index(index),
            builder,
            lambda r: r.update_body(settings=settings or {}),
        )
        return self._execute_acknowledged(request, f"Failed to create {index}.")

    def index_exists(
        self, index: str, *, builder: engine_client.RequestBuilder | None = None
    ) -> bool:
        request = _apply(self.client().prepare_index_exists(index), builder, lambda r: r)
        return self.client().execute(request).exists

    def delete_index(
        self, index: str, *, builder: engine_client.RequestBuilder | None = None
    ) -> engine_client.EngineResponse:
        request = _apply(self.client().prepare_delete_index(index), builder, lambda r: r)
        return self._execute_acknowledged(request, f"Failed to delete {index}.")

    def create_mapping(
        self,
        index: str,
        source: str | dict | None = None,
        *,
        builder: engine_client.RequestBuilder | None = None,
    ) -> engine_client.EngineResponse:
        request = _apply(
            self.client().prepare_put_mapping(index),
            builder,
            lambda r: r.set_source(source) if source is not None else r,
        )
        return self._execute_acknowledged(request, f"Failed to create a mapping for {index}.")

    def insert(
        self,
        index: str,
        doc_id: str,
        source: str | dict | None = None,
        *,
        builder: engine_client.RequestBuilder | None = None,
    ) -> engine_client.EngineResponse:
        """Index the document, it's a failure when the document already existed."""
        request = _apply(
            self.client().prepare_index(index, doc_id),
            builder,
            lambda r: (r.set_source(source) if source is not None else r).set_param(
                "refresh", True
            ),
        )
        response = self.client().execute(request)
        if response.result != "created":
            self.on_failure(f"Failed to insert {doc_id} into {index}.", response)
        return response

    def delete(
        self, index: str, doc_id: str, *, builder: engine_client.RequestBuilder | None = None
    ) -> engine_client.EngineResponse:
        request = _apply(
            self.client().prepare_delete(index, doc_id),
            builder,
            lambda r: r.set_param("refresh", True),
        )
        response = self.client().execute(request)
        if response.result != "deleted":
            self.on_failure(f"Failed to delete {doc_id} from {index}.", response)
        return response

    def count(
        self, index: str, *, builder: engine_client.RequestBuilder | None = None
    ) -> engine_client.EngineResponse:
        """Search with no hits returned, the count is in `total_hits` of the response."""
        request = self.client().prepare_search(index).update_body(size=0)
        return self.client().execute(_apply(request, builder, lambda r: r))

    def search(
        self,
        index: str,
        query: dict[str, tp.Any] | None = None,
        sort: list[tp.Any] | None = None,
        from_: int = 0,
        size: int = 10,
        *,
        builder: engine_client.RequestBuilder | None = None,
    ) -> engine_client.EngineResponse:
        request = _apply(
            self.client().prepare_search(index),
            builder,
            lambda r: r.update_body(
                query=query or {"match_all": {}},
                sort=sort or ["_score"],
                **{"from": from_, "size": size},
            ),
        )
        return self.client().execute(request)

    def get_alias(
        self, alias: str, *, builder: engine_client.RequestBuilder | None = None
    ) -> engine_client.EngineResponse:
        request = _apply(self.client().prepare_get_aliases(alias), builder, lambda r: r)
        return self.client().execute(request)

    def update_alias(
        self,
        alias: str | None = None,
        added: tp.Sequence[str] = (),
        deleted: tp.Sequence[str] = (),
        *,
        builder: engine_client.RequestBuilder | None = None,
    ) -> engine_client.EngineResponse:
        def _default(request: engine_client.EngineRequest) -> engine_client.EngineRequest:
            actions = request.body["actions"]
            if added:
                actions.append({"add": {"indices": list(added), "alias": alias}})
            if deleted:
                actions.append({"remove": {"indices": list(deleted), "alias": alias}})
            return request

        request = _apply(self.client().prepare_update_aliases(), builder, _default)
        return self._execute_acknowledged(request, "Failed to update aliases.")
