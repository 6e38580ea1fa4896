"""Search engine nodes.

The runner treats a node as an opaque handle that can be started, closed and queried over its
HTTP port. `ProcessNode` runs the node as a child process of an engine distribution; any other
implementation of the `Node` protocol can be plugged in through a node factory.
"""

import dataclasses
import logging
import os
import pathlib as pl
import subprocess
import time
import types
import typing as tp

import psutil

from opensearch_runner.engine import client as engine_client
from opensearch_runner.utils import configuration
from opensearch_runner.utils import helpers
from opensearch_runner.utils import types as ttypes

if tp.TYPE_CHECKING:
    from opensearch_runner.cluster_management import plugins as node_plugins

LOGGER = logging.getLogger(__name__)

CONSOLE_LOG = "console.log"

T = tp.TypeVar("T")


class NodeValidationError(Exception):
    """The node failed to start."""


@dataclasses.dataclass(frozen=True)
class NodeEnvironment:
    """Environment the node is started from.

    It's kept for the whole life of the node record, so a closed node can be started again
    with exactly the same settings.
    """

    settings: tp.Mapping[str, ttypes.SettingValue]
    config_dir: pl.Path
    home_dir: pl.Path
    data_dir: pl.Path
    logs_dir: pl.Path

    @property
    def modules_dir(self) -> pl.Path:
        return self.home_dir / "modules"

    @property
    def plugins_dir(self) -> pl.Path:
        return self.home_dir / "plugins"

    @property
    def node_name(self) -> str:
        return str(self.settings.get("node.name") or "unknown")

    @classmethod
    def prepare(
        cls, settings: tp.Mapping[str, ttypes.SettingValue], config_dir: pl.Path
    ) -> "NodeEnvironment":
        def _path(key: str) -> pl.Path:
            value = settings.get(key)
            if not value:
                msg = f"The `{key}` setting is missing."
                raise ValueError(msg)
            return pl.Path(str(value))

        return cls(
            settings=types.MappingProxyType(dict(settings)),
            config_dir=config_dir,
            home_dir=_path("path.home"),
            data_dir=_path("path.data"),
            logs_dir=_path("path.logs"),
        )


class Node(tp.Protocol):
    environment: NodeEnvironment
    plugins: tuple["node_plugins.NodePlugin", ...]

    @property
    def settings(self) -> tp.Mapping[str, ttypes.SettingValue]: ...

    def start(self) -> None: ...

    def close(self) -> None: ...

    def is_closed(self) -> bool: ...

    def await_close(self, timeout: float) -> bool: ...

    def client(self) -> engine_client.EngineClient: ...

    def get_instance(self, service_cls: type[T]) -> T: ...


NodeFactory = tp.Callable[[NodeEnvironment, tuple["node_plugins.NodePlugin", ...]], Node]


class ClusterService:
    """Access to the cluster state as seen by a node."""

    def __init__(self, node: Node) -> None:
        self.node = node

    def state(self) -> dict[str, tp.Any]:
        return self.node.client().cluster_state().body

    @property
    def cluster_name(self) -> str:
        return str(self.node.settings.get("cluster.name") or "")

    @property
    def local_node_name(self) -> str:
        return self.node.environment.node_name

    def cluster_manager_node_name(self) -> str | None:
        """Return name of the node that is currently the cluster manager."""
        state = self.state()
        manager_id = state.get("cluster_manager_node") or state.get("master_node")
        if not manager_id:
            return None
        node_info = (state.get("nodes") or {}).get(manager_id) or {}
        return node_info.get("name")


def get_launcher() -> pl.Path | None:
    """Return path to the engine launcher script."""
    if configuration.ENGINE_BIN:
        return configuration.ENGINE_BIN
    if configuration.ENGINE_HOME:
        return configuration.ENGINE_HOME / "bin" / "opensearch"
    return None


def get_engine_args(settings: tp.Mapping[str, ttypes.SettingValue]) -> list[str]:
    """Return `-E key=value` arguments for the engine launcher.

    `path.home` is passed too, so modules and plugins are loaded from the node home instead of
    the engine distribution.
    """
    values = []
    for key, value in settings.items():
        value_str = ",".join(value) if isinstance(value, list | tuple) else value
        values.append(f"{key}={value_str}")
    return helpers.prepend_flag("-E", values)


class ProcessNode:
    """Node running as a child process of the engine distribution.

    A single instance can be started only once. To start a closed node again, create a new
    instance from the same environment.
    """

    def __init__(
        self,
        environment: NodeEnvironment,
        plugins: tuple["node_plugins.NodePlugin", ...] = (),
        *,
        start_timeout: float = configuration.NODE_START_TIMEOUT,
    ) -> None:
        self.environment = environment
        self.plugins = tuple(plugins)
        self.start_timeout = start_timeout

        self._proc: psutil.Popen | None = None
        self._procs: list[psutil.Process] = []
        self._console: tp.IO[bytes] | None = None
        self._closing = False

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}: {self.environment.node_name}>"

    @property
    def settings(self) -> tp.Mapping[str, ttypes.SettingValue]:
        return self.environment.settings

    @property
    def pid(self) -> int | None:
        return self._proc.pid if self._proc else None

    def client(self) -> engine_client.EngineClient:
        port = self.settings.get("http.port")
        return engine_client.EngineClient(f"http://localhost:{port}")

    def get_instance(self, service_cls: type[T]) -> T:
        return service_cls(self)  # type: ignore[call-arg]

    def start(self) -> None:
        if self._proc is not None:
            msg = f"{self.environment.node_name} was already started."
            raise NodeValidationError(msg)

        launcher = get_launcher()
        if launcher is None or not launcher.exists():
            msg = (
                f"Engine launcher '{launcher}' not found. "
                "Set the `OPENSEARCH_HOME` or `OPENSEARCH_BIN` env variable."
            )
            raise NodeValidationError(msg)

        for plugin in self.plugins:
            plugin.install(self.environment)

        env = {
            **os.environ,
            "OPENSEARCH_PATH_CONF": str(self.environment.config_dir),
        }
        cmd = [str(launcher), *get_engine_args(self.environment.settings)]
        console_log = self.environment.logs_dir / CONSOLE_LOG

        LOGGER.debug(f"Starting {self.environment.node_name}: `{' '.join(cmd)}`")
        self._console = open(console_log, "ab")  # noqa: SIM115
        try:
            self._proc = psutil.Popen(
                cmd,
                stdout=self._console,
                stderr=subprocess.STDOUT,
                env=env,
                cwd=self.environment.home_dir,
            )
        except OSError:
            self._close_console()
            raise
        self._procs = [self._proc]
        self._wait_for_http(console_log=console_log)

    def _wait_for_http(self, console_log: pl.Path) -> None:
        assert self._proc is not None
        node_client = self.client()
        end_time = time.monotonic() + self.start_timeout

        while time.monotonic() < end_time:
            retcode = self._proc.poll()
            if retcode is not None:
                self._close_console()
                msg = (
                    f"{self.environment.node_name} exited with code {retcode}, "
                    f"see '{console_log}'."
                )
                raise NodeValidationError(msg)
            if node_client.ping():
                return
            time.sleep(1)

        self.close()
        self.await_close(timeout=10)
        msg = (
            f"{self.environment.node_name} didn't start in {self.start_timeout} seconds, "
            f"see '{console_log}'."
        )
        raise NodeValidationError(msg)

    def _close_console(self) -> None:
        if self._console is not None:
            self._console.close()
            self._console = None

    def close(self) -> None:
        if self._proc is None or self._closing:
            return
        self._closing = True

        try:
            children = self._proc.children(recursive=True)
        except psutil.NoSuchProcess:
            children = []
        self._procs = [self._proc, *children]

        for proc in self._procs:
            try:
                proc.terminate()
            except psutil.NoSuchProcess:
                continue

    def await_close(self, timeout: float) -> bool:
        if not self._procs:
            return True

        __, alive = psutil.wait_procs(self._procs, timeout=timeout)
        if alive:
            return False

        self._close_console()
        return True

    def is_closed(self) -> bool:
        if self._proc is None or self._closing:
            return True
        return self._proc.poll() is not None
