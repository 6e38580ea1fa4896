import typing as tp

NODE_NAME = "node.name"
HTTP_PORT = "http.port"
NODE_ROLES = "node.roles"
PATH_MODULES = "path.modules"
PATH_PLUGINS = "path.plugins"

ENGINE_SETTINGS_FILE = "opensearch.yml"
ENGINE_LOGGING_FILE = "log4j2.properties"

NODE_DIR_TEMPLATE = "node_"
CONFIG_DIR = "config"
DATA_DIR = "data"
LOGS_DIR = "logs"
MODULES_DIR = "modules"
PLUGINS_DIR = "plugins"

DEFAULT_NODE_ROLES = ("cluster_manager", "data")


class RunnerError(Exception):
    """Base error of the cluster runner.

    When the error was caused by a response of the engine, the response is available in the
    `response` attribute.
    """

    def __init__(self, message: str, response: tp.Any = None) -> None:
        super().__init__(message)
        self.response = response


class AllNodesClosedError(RunnerError):
    pass


class OperationFailure(RunnerError):
    """An engine operation didn't succeed, the response is in the `response` attribute."""


def get_node_name(ordinal: int) -> str:
    return f"Node {ordinal}"
