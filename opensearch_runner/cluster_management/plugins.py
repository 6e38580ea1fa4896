"""Registry of engine modules and plugins loaded by cluster nodes.

Modules and plugins are requested by string identifiers (e.g. on the command line). The
identifiers are resolved through the registry populated at import time with the default
engine modules. Additional plugins are registered with `register`.

Unknown modules are skipped with a warning, as not every engine distribution ships all of
them. Unknown plugins were requested explicitly and are an error.
"""

import logging
import shutil
import typing as tp

from opensearch_runner.cluster_management import common
from opensearch_runner.engine import node as engine_node
from opensearch_runner.utils import configuration

LOGGER = logging.getLogger(__name__)

DEFAULT_MODULE_TYPES: tuple[str, ...] = (
    "aggs-matrix-stats",
    "analysis-common",
    "cache-common",
    "geo",
    "ingest-common",
    "ingest-user-agent",
    "lang-expression",
    "lang-mustache",
    "lang-painless",
    "mapper-extras",
    "opensearch-dashboards",
    "parent-join",
    "percolator",
    "rank-eval",
    "reindex",
    "repository-url",
    "search-pipeline-common",
    "systemd",
    "transport-netty4",
)


class PluginNotFoundError(common.RunnerError):
    pass


class NodePlugin:
    """Capability installed into a node environment before the node starts."""

    name: str = ""

    def install(self, environment: engine_node.NodeEnvironment) -> None:
        pass

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}: {self.name}>"


class EngineModule(NodePlugin):
    """Module shipped with the engine distribution."""

    def __init__(self, name: str) -> None:
        self.name = name

    def install(self, environment: engine_node.NodeEnvironment) -> None:
        """Copy the module from the engine distribution into the node modules dir."""
        if not configuration.ENGINE_HOME:
            return

        source = configuration.ENGINE_HOME / "modules" / self.name
        if not source.is_dir():
            LOGGER.debug(f"Module '{self.name}' is not available in '{source.parent}'.")
            return

        shutil.copytree(source, environment.modules_dir / self.name, dirs_exist_ok=True)


PluginFactory = tp.Callable[[], NodePlugin]

_REGISTRY: dict[str, PluginFactory] = {}


def register(name: str, factory: PluginFactory) -> None:
    """Register factory of a module or plugin under the given identifier."""
    _REGISTRY[name] = factory


def unregister(name: str) -> None:
    _REGISTRY.pop(name, None)


def get_registered() -> list[str]:
    return sorted(_REGISTRY)


def resolve_modules(module_types: tp.Iterable[str] | None) -> list[NodePlugin]:
    """Return modules for the identifiers, unknown identifiers are skipped."""
    types = DEFAULT_MODULE_TYPES if module_types is None else module_types
    modules = []
    for module_type in types:
        module_type = module_type.strip()
        if not module_type:
            continue
        factory = _REGISTRY.get(module_type)
        if factory is None:
            LOGGER.warning(f"{module_type} is not found.")
            continue
        modules.append(factory())
    return modules


def resolve_plugins(plugin_types: tp.Iterable[str] | None) -> list[NodePlugin]:
    """Return plugins for the identifiers, unknown identifier is an error."""
    plugins = []
    for plugin_type in plugin_types or ():
        plugin_type = plugin_type.strip()
        if not plugin_type:
            continue
        factory = _REGISTRY.get(plugin_type)
        if factory is None:
            msg = f"{plugin_type} is not found."
            raise PluginNotFoundError(msg)
        plugins.append(factory())
    return plugins


def _register_default_modules() -> None:
    for module_type in DEFAULT_MODULE_TYPES:
        register(module_type, lambda name=module_type: EngineModule(name))  # type: ignore[misc]


_register_default_modules()
