"""Supervision of cluster nodes.

Every provisioned node is tracked by a `NodeRecord`. The record keeps the environment and
plugins the node was first started with, so a closed node can be started again with exactly
the same settings. Records are never removed, a restart replaces the whole record in place.
"""

import dataclasses
import logging
import pathlib as pl
import threading
import typing as tp

from opensearch_runner.cluster_management import common
from opensearch_runner.cluster_management import ports
from opensearch_runner.cluster_management import settings as node_settings
from opensearch_runner.cluster_management import workspace
from opensearch_runner.engine import node as engine_node
from opensearch_runner.utils import types as ttypes

if tp.TYPE_CHECKING:
    from opensearch_runner.cluster_management import configs
    from opensearch_runner.cluster_management import plugins as node_plugins

LOGGER = logging.getLogger(__name__)


class NodeStartError(common.RunnerError):
    def __init__(self, message: str, ordinal: int) -> None:
        super().__init__(message)
        self.ordinal = ordinal


class ShutdownError(common.RunnerError):
    def __init__(self, message: str, errors: list[OSError] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


@dataclasses.dataclass(frozen=True)
class NodeRecord:
    ordinal: int
    paths: node_settings.NodePaths
    environment: engine_node.NodeEnvironment
    plugins: tuple["node_plugins.NodePlugin", ...]
    node: engine_node.Node

    @property
    def settings(self) -> tp.Mapping[str, ttypes.SettingValue]:
        return self.environment.settings

    @property
    def name(self) -> str:
        return str(self.settings.get(common.NODE_NAME) or common.get_node_name(self.ordinal))

    @property
    def http_port(self) -> int | None:
        port = self.settings.get(common.HTTP_PORT)
        return int(port) if port else None

    def is_closed(self) -> bool:
        return self.node.is_closed()


class NodeSupervisor:
    """Start, restart and shut down cluster nodes, and look them up.

    Nodes are indexed from 0 in the order they were started, while node ordinals (used in
    node names, directories and ports) start at 1.
    """

    def __init__(
        self,
        node_factory: engine_node.NodeFactory,
        *,
        print_func: ttypes.LogFunc = print,
        framework_logger: logging.Logger | None = None,
    ) -> None:
        self.node_factory = node_factory
        self.print_func = print_func
        self.framework_logger = framework_logger or LOGGER
        self.lock = threading.RLock()
        self._records: list[NodeRecord] = []

    def __iter__(self) -> tp.Iterator[engine_node.Node]:
        return iter([r.node for r in self.records])

    def __len__(self) -> int:
        return self.size

    @property
    def records(self) -> tuple[NodeRecord, ...]:
        with self.lock:
            return tuple(self._records)

    @property
    def size(self) -> int:
        return len(self._records)

    def _start_node(
        self,
        config: "configs.ClusterConfig",
        *,
        ordinal: int,
        base_path: pl.Path,
        modules: tp.Sequence["node_plugins.NodePlugin"],
        plugins: tp.Sequence["node_plugins.NodePlugin"],
    ) -> NodeRecord:
        settings = node_settings.apply_callback(
            node_settings.Settings(), ordinal=ordinal, callback=config.settings_callback
        )

        paths = workspace.provision(
            base_path,
            ordinal,
            conf_path=config.conf_path,
            data_path=config.data_path,
            logs_path=config.logs_path,
            log_func=self.print_func,
        )
        workspace.seed_config_files(
            paths.config, disable_engine_logger=config.disable_engine_logger
        )

        # Mirrored modules replace the default set of modules
        modules_mirrored = workspace.mirror_external_dirs(settings, paths.home)
        node_plugins = tuple(plugins) if modules_mirrored else (*modules, *plugins)

        http_port = None
        if common.HTTP_PORT not in settings:
            http_port = ports.get_available_http_port(
                config.base_http_port,
                ordinal,
                config.max_http_port,
                log_func=self.print_func,
            )

        node_settings.merge_node_settings(
            ordinal=ordinal,
            paths=paths,
            cluster_name=config.cluster_name,
            http_port=http_port,
            index_store_type=config.index_store_type,
            settings=settings,
        )

        environment = engine_node.NodeEnvironment.prepare(settings.build(), paths.config)
        workspace.create_dir(environment.modules_dir, log_func=self.print_func)
        workspace.create_dir(environment.plugins_dir, log_func=self.print_func)

        node = self.node_factory(environment, node_plugins)
        node.start()

        return NodeRecord(
            ordinal=ordinal,
            paths=paths,
            environment=environment,
            plugins=node_plugins,
            node=node,
        )

    def start_all(
        self,
        config: "configs.ClusterConfig",
        *,
        base_path: pl.Path,
        modules: tp.Sequence["node_plugins.NodePlugin"] = (),
        plugins: tp.Sequence["node_plugins.NodePlugin"] = (),
    ) -> list[NodeRecord]:
        """Provision and start `config.num_of_node` nodes, one by one.

        Nodes that were already started stay started when starting of a node fails.
        """
        started = []
        for ordinal in range(1, config.num_of_node + 1):
            try:
                record = self._start_node(
                    config,
                    ordinal=ordinal,
                    base_path=base_path,
                    modules=modules,
                    plugins=plugins,
                )
            except common.RunnerError as exc:
                self.framework_logger.error(f"Failed to start node {ordinal}: {exc}")
                raise
            except Exception as exc:
                self.framework_logger.error(f"Failed to start node {ordinal}: {exc}")
                msg = f"Failed to start node {ordinal}"
                raise NodeStartError(msg, ordinal=ordinal) from exc

            with self.lock:
                self._records.append(record)
            started.append(record)
            self.framework_logger.info(f"{record.name} started on port {record.http_port}")

            self.print_func(f"Node Name:      {record.name}")
            self.print_func(f"HTTP Port:      {record.http_port}")
            self.print_func(f"Data Directory: {record.settings.get('path.data')}")
            self.print_func(f"Log Directory:  {record.settings.get('path.logs')}")

        return started

    def restart(self, i: int) -> bool:
        """Start the closed node at index `i` again.

        Returns:
            bool: False if there's no node at the index, the node is not closed, or it failed
                to start.
        """
        with self.lock:
            record = self.get_record(i)
            if record is None or not record.is_closed():
                return False

            node = self.node_factory(record.environment, record.plugins)
            try:
                node.start()
            except engine_node.NodeValidationError as exc:
                self.print_func(f"Failed to start {record.name}: {exc}")
                self.framework_logger.error(f"{record.name} failed to restart: {exc}")
                return False

            self._records[i] = dataclasses.replace(record, node=node)

        self.framework_logger.info(f"{record.name} restarted")
        return True

    def shutdown_all(self, timeout: float) -> None:
        """Close all nodes, waiting up to `timeout` seconds for each of them.

        Errors are collected and raised together once all the nodes were processed.
        """
        errors: list[OSError] = []
        for record in self.records:
            node = record.node
            try:
                node.close()
                if node.await_close(timeout):
                    self.framework_logger.info(f"{record.name} closed")
                else:
                    self.print_func(f"Failed to close node: {record.name}")
                    self.framework_logger.warning(
                        f"{record.name} didn't close in {timeout} seconds"
                    )
            except (InterruptedError, KeyboardInterrupt):
                LOGGER.info(f"Interrupted while closing {record.name}")
            except OSError as exc:
                self.framework_logger.error(f"Failed to close {record.name}: {exc}")
                errors.append(exc)

        if errors:
            msg = "\n".join(str(e) for e in errors)
            raise ShutdownError(msg, errors=errors)

    def is_all_closed(self) -> bool:
        return all(r.is_closed() for r in self.records)

    def get_record(self, i: int) -> NodeRecord | None:
        with self.lock:
            if i < 0 or i >= len(self._records):
                return None
            return self._records[i]

    def get(self, i: int) -> engine_node.Node | None:
        record = self.get_record(i)
        return record.node if record else None

    def get_by_name(self, name: str | None) -> engine_node.Node | None:
        if name is None:
            return None
        for record in self.records:
            if record.name == name:
                return record.node
        return None

    def index_of(self, node: engine_node.Node) -> int:
        """Return index of the node, or -1 if the node is not tracked."""
        for i, record in enumerate(self.records):
            if record.node is node:
                return i
        return -1

    def any_available(self) -> engine_node.Node:
        """Return the first node that is not closed."""
        for record in self.records:
            if not record.is_closed():
                return record.node
        msg = "All nodes are closed."
        raise common.AllNodesClosedError(msg)

    def _cluster_manager_name(self) -> str | None:
        service = self.any_available().get_instance(engine_node.ClusterService)
        return service.cluster_manager_node_name()

    def cluster_manager_node(self) -> engine_node.Node | None:
        """Return the node that is currently the cluster manager."""
        with self.lock:
            return self.get_by_name(self._cluster_manager_name())

    def non_cluster_manager_node(self) -> engine_node.Node | None:
        """Return the first running node that is not the cluster manager."""
        with self.lock:
            name = self._cluster_manager_name()
            for record in self._records:
                if not record.is_closed() and record.name != name:
                    return record.node
            return None
