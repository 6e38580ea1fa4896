"""Locking of HTTP port allocation across pytest-xdist workers."""

import contextlib
import logging
import typing as tp

import filelock

from opensearch_runner.utils import configuration
from opensearch_runner.utils import temptools

# Suppress messages from filelock
logging.getLogger("filelock").setLevel(logging.WARNING)


@contextlib.contextmanager
def ports_lock(lock_file: str = "") -> tp.Iterator[None]:
    """Hold the ports lock while HTTP ports are probed and bound by starting nodes.

    Clusters started by different workers share the same range of HTTP ports. When not running
    with multiple workers, no lock is taken.
    """
    if not configuration.IS_XDIST:
        yield
        return

    with filelock.FileLock(lock_file or temptools.get_ports_lock_file()):
        yield
