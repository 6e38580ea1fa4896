"""Cluster runner configuration.

Values are read from env variables and are used as defaults for `ClusterConfig` and
for the command line arguments.
"""

import os
import pathlib as pl

IS_XDIST = bool(os.environ.get("PYTEST_XDIST_TESTRUNUID"))

# Base path for all node directories. A new temporary directory is created when not set.
BASE_PATH = os.environ.get("RUNNER_BASE_PATH") or ""
if BASE_PATH:
    BASE_PATH = str(pl.Path(BASE_PATH).expanduser().resolve())

NUM_OF_NODE = int(os.environ.get("RUNNER_NUM_OF_NODE") or 3)
if NUM_OF_NODE < 0:
    msg = f"Invalid RUNNER_NUM_OF_NODE '{NUM_OF_NODE}': must be >= 0"
    raise RuntimeError(msg)

# HTTP port of node N is `BASE_HTTP_PORT + N` (or the next free port up to `MAX_HTTP_PORT`)
BASE_HTTP_PORT = int(os.environ.get("RUNNER_BASE_HTTP_PORT") or 9200)
# Negative value disables checking whether the port is already taken
MAX_HTTP_PORT = int(os.environ.get("RUNNER_MAX_HTTP_PORT") or 9299)

CLUSTER_NAME = os.environ.get("RUNNER_CLUSTER_NAME") or "cluster-runner"
INDEX_STORE_TYPE = os.environ.get("RUNNER_INDEX_STORE_TYPE") or "fs"

# Seconds to wait for a single node to close
SHUTDOWN_TIMEOUT = float(os.environ.get("RUNNER_SHUTDOWN_TIMEOUT") or 10)
# Seconds to wait for a node process to start answering on its HTTP port
NODE_START_TIMEOUT = float(os.environ.get("RUNNER_NODE_START_TIMEOUT") or 120)
if SHUTDOWN_TIMEOUT <= 0 or NODE_START_TIMEOUT <= 0:
    msg = "RUNNER_SHUTDOWN_TIMEOUT and RUNNER_NODE_START_TIMEOUT must be positive"
    raise RuntimeError(msg)

# Server side timeout of cluster health requests, in the engine's time unit format
HEALTH_TIMEOUT = os.environ.get("RUNNER_HEALTH_TIMEOUT") or "30s"

# Engine distribution used for starting node processes and as a source of engine modules
ENGINE_HOME: pl.Path | None = None
if os.environ.get("OPENSEARCH_HOME"):
    ENGINE_HOME = pl.Path(os.environ["OPENSEARCH_HOME"]).expanduser().resolve()

# Explicit path to the engine launcher, `ENGINE_HOME/bin/opensearch` is used when not set
ENGINE_BIN: pl.Path | None = None
if os.environ.get("OPENSEARCH_BIN"):
    ENGINE_BIN = pl.Path(os.environ["OPENSEARCH_BIN"]).expanduser().resolve()
