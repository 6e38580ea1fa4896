#!/usr/bin/env python3
"""Run a cluster of OpenSearch nodes until all the nodes are closed.

For defaults it uses the same env variables as the `ClusterRunner`.
"""

import atexit
import logging
import signal
import sys
import time
import typing as tp

from opensearch_runner.cluster_management import configs
from opensearch_runner.cluster_management import manager
from opensearch_runner.cluster_management import nodes
from opensearch_runner.engine import node as engine_node
from opensearch_runner.utils import helpers

LOGGER = logging.getLogger(__name__)

POLL_INTERVAL = 5


def _handle_sigterm(signum: int, frame: tp.Any) -> None:  # noqa: ARG001
    raise SystemExit(0)


def close_runner(runner: manager.ClusterRunner) -> None:
    """Close all nodes of the cluster, unless they are already closed."""
    if runner.is_closed():
        return

    with helpers.ignore_interrupt():
        try:
            runner.close()
        except nodes.ShutdownError:
            LOGGER.exception("Failed to close the cluster.")


def wait_until_closed(runner: manager.ClusterRunner, interval: float = POLL_INTERVAL) -> None:
    while not runner.is_closed():
        time.sleep(interval)


def main(
    argv: tp.Sequence[str] | None = None,
    *,
    node_factory: engine_node.NodeFactory = engine_node.ProcessNode,
) -> int:
    logging.basicConfig(format="%(levelname)s:%(message)s", level=logging.INFO)

    try:
        config = configs.ClusterConfig.from_args(sys.argv[1:] if argv is None else argv)
    except configs.ConfigError as exc:
        LOGGER.error(str(exc))  # noqa: TRY400
        configs.get_parser().print_usage()
        return 1

    runner = manager.ClusterRunner(config, node_factory=node_factory)
    atexit.register(close_runner, runner)
    try:
        signal.signal(signal.SIGTERM, _handle_sigterm)
    except ValueError:
        # Not in the main thread
        LOGGER.debug("SIGTERM handler was not installed.")

    try:
        try:
            runner.build()
        except Exception:
            LOGGER.exception("Failed to start the cluster.")
            return 1

        try:
            wait_until_closed(runner)
        except KeyboardInterrupt:
            LOGGER.info("Interrupted, closing the cluster.")
    finally:
        close_runner(runner)
        atexit.unregister(close_runner)

    return 0


if __name__ == "__main__":
    sys.exit(main())
