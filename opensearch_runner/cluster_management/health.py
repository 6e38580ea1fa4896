"""Waiting for the cluster health.

The wait itself is done by the engine (the health request blocks until the requested status
is reached or the request times out). On timeout, a diagnostic message with the cluster state
and pending tasks is passed to the failure handler of the caller, which decides whether the
timeout is fatal.
"""

import enum
import logging
import typing as tp

from opensearch_runner.cluster_management import common
from opensearch_runner.engine import client as engine_client
from opensearch_runner.utils import configuration

LOGGER = logging.getLogger(__name__)

FailureHandler = tp.Callable[[common.OperationFailure], None]


class HealthStatus(enum.StrEnum):
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"


class HealthTimeoutError(common.OperationFailure):
    pass


def raise_failure(error: common.OperationFailure) -> None:
    raise error


def get_diagnostics(client: engine_client.EngineClient) -> str:
    """Return cluster state and pending tasks for a failure message."""
    state = client.cluster_state()
    pending_tasks = client.pending_tasks()
    return f"{state}\n{pending_tasks}"


def _wait(
    client: engine_client.EngineClient,
    *,
    name: str,
    status: HealthStatus | None,
    indices: tp.Iterable[str],
    timeout: str,
    on_failure: FailureHandler,
) -> HealthStatus | None:
    request = client.prepare_cluster_health(indices).set_params(
        wait_for_status=status.value if status else None,
        wait_for_no_relocating_shards=True,
        wait_for_events="languid" if status else None,
        timeout=timeout,
    )
    response = client.execute(request)

    if response.timed_out:
        LOGGER.debug(f"{name} timed out after {timeout}")
        msg = f"{name} timed out, cluster state:\n{get_diagnostics(client)}"
        on_failure(HealthTimeoutError(msg, response=response))

    return HealthStatus(response.status) if response.status else None


def wait_for(
    client: engine_client.EngineClient,
    *,
    status: HealthStatus,
    indices: tp.Iterable[str] = (),
    timeout: str = configuration.HEALTH_TIMEOUT,
    on_failure: FailureHandler = raise_failure,
) -> HealthStatus | None:
    """Wait until the cluster (or the indices) reach the status and no shards are relocating.

    Returns:
        HealthStatus | None: Last known status of the cluster, even when the wait timed out and
            the failure handler didn't raise.
    """
    return _wait(
        client,
        name=f"ensure_{status.value}",
        status=status,
        indices=tuple(indices),
        timeout=timeout,
        on_failure=on_failure,
    )


def wait_for_relocation(
    client: engine_client.EngineClient,
    *,
    timeout: str = configuration.HEALTH_TIMEOUT,
    on_failure: FailureHandler = raise_failure,
) -> HealthStatus | None:
    """Wait until no shards are relocating."""
    return _wait(
        client,
        name="wait_for_relocation",
        status=None,
        indices=(),
        timeout=timeout,
        on_failure=on_failure,
    )
