"""Configuration of a cluster build.

A `ClusterConfig` can be created from command line style arguments, or with the fluent
`Configs` builder that produces such arguments:

>>> args = Configs().cluster_name("test").num_of_node(1).build()
>>> args
['-clusterName', 'test', '-numOfNode', '1']
>>> ClusterConfig.from_args(args).num_of_node
1
"""

import argparse
import dataclasses
import typing as tp

from opensearch_runner.cluster_management import common
from opensearch_runner.cluster_management import settings as node_settings
from opensearch_runner.utils import configuration
from opensearch_runner.utils import helpers


class ConfigError(common.RunnerError):
    pass


@dataclasses.dataclass(frozen=True)
class ClusterConfig:
    cluster_name: str = configuration.CLUSTER_NAME
    num_of_node: int = configuration.NUM_OF_NODE
    base_path: str | None = configuration.BASE_PATH or None
    conf_path: str | None = None
    data_path: str | None = None
    logs_path: str | None = None
    base_http_port: int = configuration.BASE_HTTP_PORT
    max_http_port: int = configuration.MAX_HTTP_PORT
    index_store_type: str = configuration.INDEX_STORE_TYPE
    use_logger: bool = False
    disable_engine_logger: bool = False
    print_on_failure: bool = False
    # `None` means the default set of engine modules
    module_types: tuple[str, ...] | None = None
    plugin_types: tuple[str, ...] = ()
    settings_callback: node_settings.SettingsCallback | None = None
    shutdown_timeout: float = configuration.SHUTDOWN_TIMEOUT

    @classmethod
    def from_args(cls, args: tp.Sequence[str] | None) -> "ClusterConfig":
        """Create configuration from command line style arguments."""
        if not args:
            return cls()

        parsed = get_parser().parse_args(list(args))
        module_types = (
            helpers.split_comma_list(parsed.module_types)
            if parsed.module_types is not None
            else None
        )
        return cls(
            cluster_name=parsed.cluster_name,
            num_of_node=parsed.num_of_node,
            base_path=parsed.base_path,
            conf_path=parsed.conf_path,
            data_path=parsed.data_path,
            logs_path=parsed.logs_path,
            base_http_port=parsed.base_http_port,
            max_http_port=parsed.max_http_port,
            index_store_type=parsed.index_store_type,
            use_logger=parsed.use_logger,
            disable_engine_logger=parsed.disable_engine_logger,
            print_on_failure=parsed.print_on_failure,
            module_types=module_types,
            plugin_types=helpers.split_comma_list(parsed.plugin_types),
        )


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> tp.NoReturn:
        msg = f"Failed to parse args: {message}"
        raise ConfigError(msg)


def _non_negative_int(value: str) -> int:
    num = int(value)
    if num < 0:
        msg = f"must be >= 0: {value}"
        raise argparse.ArgumentTypeError(msg)
    return num


def get_parser() -> argparse.ArgumentParser:
    """Return parser of the command line arguments."""
    parser = _ArgumentParser(
        prog="opensearch-runner",
        description="Run a cluster of OpenSearch nodes for development and testing.",
        allow_abbrev=False,
    )
    parser.add_argument(
        "-basePath",
        dest="base_path",
        default=configuration.BASE_PATH or None,
        help="Base path for OpenSearch (default: new temporary directory).",
    )
    parser.add_argument("-confPath", dest="conf_path", help="Config path for OpenSearch.")
    parser.add_argument("-dataPath", dest="data_path", help="Data path for OpenSearch.")
    parser.add_argument("-logsPath", dest="logs_path", help="Log path for OpenSearch.")
    parser.add_argument(
        "-numOfNode",
        dest="num_of_node",
        type=_non_negative_int,
        default=configuration.NUM_OF_NODE,
        help=f"The number of OpenSearch nodes (default: {configuration.NUM_OF_NODE}).",
    )
    parser.add_argument(
        "-baseHttpPort",
        dest="base_http_port",
        type=int,
        default=configuration.BASE_HTTP_PORT,
        help=f"Base http port (default: {configuration.BASE_HTTP_PORT}).",
    )
    parser.add_argument(
        "-maxHttpPort",
        dest="max_http_port",
        type=int,
        default=configuration.MAX_HTTP_PORT,
        help="Max http port, negative value disables checking of free ports "
        f"(default: {configuration.MAX_HTTP_PORT}).",
    )
    parser.add_argument(
        "-clusterName",
        dest="cluster_name",
        default=configuration.CLUSTER_NAME,
        help=f"Cluster name (default: {configuration.CLUSTER_NAME}).",
    )
    parser.add_argument(
        "-indexStoreType",
        dest="index_store_type",
        default=configuration.INDEX_STORE_TYPE,
        help=f"Index store type (default: {configuration.INDEX_STORE_TYPE}).",
    )
    parser.add_argument(
        "-useLogger", dest="use_logger", action="store_true", help="Print logs to a logger."
    )
    parser.add_argument(
        "-disableEngineLogger",
        "-disableESLogger",
        dest="disable_engine_logger",
        action="store_true",
        help="Don't seed the engine logging config.",
    )
    parser.add_argument(
        "-printOnFailure",
        dest="print_on_failure",
        action="store_true",
        help="Print a failure instead of raising an error.",
    )
    parser.add_argument(
        "-moduleTypes", dest="module_types", help="Comma separated list of module types."
    )
    parser.add_argument(
        "-pluginTypes", dest="plugin_types", help="Comma separated list of plugin types."
    )
    return parser


class Configs:
    """Fluent builder of cluster runner arguments."""

    def __init__(self) -> None:
        self.config_list: list[str] = []

    def _add(self, *items: tp.Any) -> "Configs":
        self.config_list.extend(str(i) for i in items)
        return self

    def base_path(self, base_path: str) -> "Configs":
        return self._add("-basePath", base_path)

    def conf_path(self, conf_path: str) -> "Configs":
        return self._add("-confPath", conf_path)

    def data_path(self, data_path: str) -> "Configs":
        return self._add("-dataPath", data_path)

    def logs_path(self, logs_path: str) -> "Configs":
        return self._add("-logsPath", logs_path)

    def num_of_node(self, num_of_node: int) -> "Configs":
        return self._add("-numOfNode", num_of_node)

    def base_http_port(self, base_http_port: int) -> "Configs":
        return self._add("-baseHttpPort", base_http_port)

    def max_http_port(self, max_http_port: int) -> "Configs":
        return self._add("-maxHttpPort", max_http_port)

    def cluster_name(self, cluster_name: str) -> "Configs":
        return self._add("-clusterName", cluster_name)

    def index_store_type(self, index_store_type: str) -> "Configs":
        return self._add("-indexStoreType", index_store_type)

    def use_logger(self) -> "Configs":
        return self._add("-useLogger")

    def disable_engine_logger(self) -> "Configs":
        return self._add("-disableEngineLogger")

    def print_on_failure(self) -> "Configs":
        return self._add("-printOnFailure")

    def module_types(self, module_types: str) -> "Configs":
        return self._add("-moduleTypes", module_types)

    def plugin_types(self, plugin_types: str) -> "Configs":
        return self._add("-pluginTypes", plugin_types)

    def build(self) -> list[str]:
        return list(self.config_list)
