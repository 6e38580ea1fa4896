"""Selection of free HTTP ports for cluster nodes."""

import logging
import socket

from opensearch_runner.cluster_management import common
from opensearch_runner.utils import types as ttypes

LOGGER = logging.getLogger(__name__)

CONNECT_TIMEOUT = 1.0


class PortExhaustedError(common.RunnerError):
    pass


def is_port_open(port: int, host: str = "localhost") -> bool:
    """Check if something is listening on the port."""
    try:
        with socket.create_connection((host, port), timeout=CONNECT_TIMEOUT):
            return True
    except OSError:
        return False


def get_available_http_port(
    base_port: int,
    ordinal: int,
    max_port: int,
    *,
    log_func: ttypes.LogFunc = LOGGER.info,
    host: str = "localhost",
) -> int:
    """Return first free port starting at `base_port + ordinal`.

    The port is probed by connecting to it, so the port is not held by the runner and the node
    can bind it right away. When `max_port` is negative, no probing is done.
    """
    port = base_port + ordinal
    if max_port < 0:
        return port

    while port <= max_port:
        try:
            with socket.create_connection((host, port), timeout=CONNECT_TIMEOUT):
                LOGGER.debug(f"Port {port} is already in use.")
        except ConnectionRefusedError:
            return port
        except OSError as exc:
            # Treat the port as taken, the error can be transient
            log_func(f"Failed to check port {port}: {exc}")
        port += 1

    msg = f"The http port {port} is unavailable."
    raise PortExhaustedError(msg)
