"""Node workspaces on the filesystem.

* creating node directories (home, config, data, logs)
* seeding config files from bundled templates
* mirroring external module and plugin directories into node home
* deleting the whole cluster base directory
"""

import atexit
import contextlib
import logging
import os
import pathlib as pl
import shutil

from opensearch_runner.cluster_management import common
from opensearch_runner.cluster_management import settings as node_settings
from opensearch_runner.utils import types as ttypes

LOGGER = logging.getLogger(__name__)

TEMPLATES_DIR = pl.Path(__file__).parent.parent / "config"


class ProvisioningError(common.RunnerError):
    pass


class CleanupError(common.RunnerError):
    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


def get_node_paths(
    base_path: ttypes.FileType,
    ordinal: int,
    *,
    conf_path: ttypes.FileType | None = None,
    data_path: ttypes.FileType | None = None,
    logs_path: ttypes.FileType | None = None,
) -> node_settings.NodePaths:
    """Return paths of the node workspace.

    Explicit override paths are used as they are, they are not nested under the node home.
    """
    home = pl.Path(base_path) / f"{common.NODE_DIR_TEMPLATE}{ordinal}"
    return node_settings.NodePaths(
        home=home,
        config=pl.Path(conf_path) if conf_path else home / common.CONFIG_DIR,
        data=pl.Path(data_path) if data_path else home / common.DATA_DIR,
        logs=pl.Path(logs_path) if logs_path else home / common.LOGS_DIR,
    )


def create_dir(path: pl.Path, *, log_func: ttypes.LogFunc = LOGGER.info) -> pl.Path:
    """Create the directory (and its parents) if it doesn't exist."""
    if path.exists():
        return path

    log_func(f"Creating {path}")
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        msg = f"Failed to create {path}"
        raise ProvisioningError(msg) from exc
    return path


def provision(
    base_path: ttypes.FileType,
    ordinal: int,
    *,
    conf_path: ttypes.FileType | None = None,
    data_path: ttypes.FileType | None = None,
    logs_path: ttypes.FileType | None = None,
    log_func: ttypes.LogFunc = LOGGER.info,
) -> node_settings.NodePaths:
    """Create directories of the node workspace."""
    paths = get_node_paths(
        base_path, ordinal, conf_path=conf_path, data_path=data_path, logs_path=logs_path
    )
    for path in (paths.home, paths.config, paths.logs, paths.data):
        create_dir(path, log_func=log_func)
    return paths


def _copy_template(template_name: str, config_dir: pl.Path) -> None:
    dest = config_dir / template_name
    if dest.exists():
        return

    try:
        shutil.copyfile(TEMPLATES_DIR / template_name, dest)
    except OSError as exc:
        msg = f"Could not create: {dest}"
        raise ProvisioningError(msg) from exc


def seed_config_files(config_dir: pl.Path, *, disable_engine_logger: bool = False) -> None:
    """Copy default config files into the config dir, unless they are already there."""
    _copy_template(common.ENGINE_SETTINGS_FILE, config_dir)
    if not disable_engine_logger:
        _copy_template(common.ENGINE_LOGGING_FILE, config_dir)


def mirror_tree(source: pl.Path, target: pl.Path) -> None:
    """Copy the whole directory tree, existing files are overwritten."""
    shutil.copytree(source, target, symlinks=False, dirs_exist_ok=True)


def mirror_external_dirs(settings: node_settings.Settings, home: pl.Path) -> bool:
    """Mirror directories set in `path.modules` and `path.plugins` into the node home.

    The settings are removed afterwards, as the node loads the modules and plugins from its
    home directory.

    Returns:
        bool: True if modules were mirrored (the default set of modules is not loaded then).
    """
    modules_mirrored = False
    for key, dirname in (
        (common.PATH_MODULES, common.MODULES_DIR),
        (common.PATH_PLUGINS, common.PLUGINS_DIR),
    ):
        source = settings.get(key)
        if source is None:
            continue

        target = home / dirname
        LOGGER.debug(f"Mirroring '{source}' to '{target}'.")
        try:
            mirror_tree(source=pl.Path(source), target=target)
        except (OSError, shutil.Error) as exc:
            msg = f"Could not copy {source} to {target}"
            raise ProvisioningError(msg) from exc
        settings.remove(key)
        if key == common.PATH_MODULES:
            modules_mirrored = True

    return modules_mirrored


def _delete_on_exit(path: str) -> None:
    if os.path.isdir(path):
        shutil.rmtree(path, ignore_errors=True)
    else:
        with contextlib.suppress(OSError):
            os.unlink(path)


def _check_deleted(path: str, errors: list[str]) -> None:
    if os.path.lexists(path):
        errors.append(f"Failed to delete {path}")
        atexit.register(_delete_on_exit, path)


def clean(base_path: ttypes.FileType) -> None:
    """Delete the cluster base directory with all its content.

    Errors when walking the tree stop the cleanup. Files and directories that still exist after
    they were deleted are reported all at once at the end.
    """
    base = pl.Path(base_path)
    if not os.path.lexists(base):
        LOGGER.debug(f"Nothing to clean, '{base}' doesn't exist.")
        return

    def _onerror(exc: OSError) -> None:
        raise exc

    errors: list[str] = []
    try:
        if base.is_symlink() or not base.is_dir():
            base.unlink()
            _check_deleted(str(base), errors)
        else:
            for dirpath, dirnames, filenames in os.walk(base, topdown=False, onerror=_onerror):
                for name in filenames:
                    fpath = os.path.join(dirpath, name)
                    os.unlink(fpath)
                    _check_deleted(fpath, errors)
                # Symlinks to directories are listed among directories, but not walked into
                for name in dirnames:
                    dpath = os.path.join(dirpath, name)
                    if os.path.islink(dpath):
                        os.unlink(dpath)
                        _check_deleted(dpath, errors)
                os.rmdir(dirpath)
                _check_deleted(dirpath, errors)
    except OSError as exc:
        msg = f"Failed to delete {base}"
        raise CleanupError(msg, errors=errors) from exc

    if errors:
        raise CleanupError("\n".join(errors), errors=errors)
