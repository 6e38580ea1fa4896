import functools
import pathlib as pl
import tempfile

PORTS_LOCK = ".ports.lock"


@functools.cache
def get_basetemp() -> pl.Path:
    """Return base temporary directory shared by all cluster runners on the host."""
    basetemp = pl.Path(tempfile.gettempdir()) / "opensearch-runner"
    basetemp.mkdir(mode=0o700, parents=True, exist_ok=True)
    return basetemp


def get_ports_lock_file() -> str:
    """Return path to the lock file guarding allocation of HTTP ports."""
    return f"{get_basetemp()}/{PORTS_LOCK}"


def create_cluster_dir(prefix: str = "opensearch-cluster") -> pl.Path:
    """Create new temporary directory to be used as a cluster base path."""
    return pl.Path(tempfile.mkdtemp(prefix=prefix)).resolve()
