"""Settings of cluster nodes.

The effective settings of a node are built by an ordered list of "fill if absent" passes over
a single `Settings` map:

1. settings put by the caller's per-node callback
2. computed paths (`path.home`, `path.data`, `path.logs`)
3. cluster-wide values (cluster name, node name, HTTP port, index store type)
4. default node roles

A pass never overwrites a key that was set by the caller or by an earlier pass. This makes it
possible for the caller to override anything the runner would otherwise compute.
"""

import dataclasses
import pathlib as pl
import types
import typing as tp

from opensearch_runner.cluster_management import common
from opensearch_runner.utils import types as ttypes

SettingsCallback = tp.Callable[[int, "Settings"], None]


def format_value(value: tp.Any) -> str:
    """Format a setting value the way the engine parses it."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclasses.dataclass(frozen=True, order=True)
class NodePaths:
    home: pl.Path
    config: pl.Path
    data: pl.Path
    logs: pl.Path


class Settings:
    """Ordered mutable map of node settings."""

    def __init__(self, initial: tp.Mapping[str, ttypes.SettingValue] | None = None) -> None:
        self._settings: ttypes.SettingsDict = {}
        for key, value in (initial or {}).items():
            self.put(key, value)

    def get(self, key: str, default: tp.Any = None) -> tp.Any:
        return self._settings.get(key, default)

    def put(self, key: str, value: tp.Any) -> "Settings":
        if isinstance(value, list | tuple):
            return self.put_list(key, *value)
        self._settings[key] = format_value(value)
        return self

    def put_list(self, key: str, *values: tp.Any) -> "Settings":
        self._settings[key] = [format_value(v) for v in values]
        return self

    def put_if_absent(self, key: str, value: tp.Any) -> "Settings":
        if key not in self._settings and value is not None:
            self.put(key, value)
        return self

    def remove(self, key: str) -> ttypes.SettingValue | None:
        return self._settings.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._settings)

    def as_dict(self) -> ttypes.SettingsDict:
        return {k: list(v) if isinstance(v, list) else v for k, v in self._settings.items()}

    def build(self) -> tp.Mapping[str, ttypes.SettingValue]:
        """Return read-only snapshot of the settings."""
        snapshot = {k: tuple(v) if isinstance(v, list) else v for k, v in self._settings.items()}
        return types.MappingProxyType(snapshot)

    def __contains__(self, key: object) -> bool:
        return key in self._settings

    def __len__(self) -> int:
        return len(self._settings)

    def __repr__(self) -> str:
        return f"Settings({self._settings!r})"


def apply_callback(
    settings: Settings, *, ordinal: int, callback: SettingsCallback | None
) -> Settings:
    """Let the caller put its own settings for the node first."""
    if callback is not None:
        callback(ordinal, settings)
    return settings


def apply_paths(settings: Settings, *, paths: NodePaths) -> Settings:
    settings.put_if_absent("path.home", str(paths.home.absolute()))
    settings.put_if_absent("path.data", str(paths.data.absolute()))
    settings.put_if_absent("path.logs", str(paths.logs.absolute()))
    return settings


def apply_cluster_values(
    settings: Settings,
    *,
    cluster_name: str,
    node_name: str,
    http_port: int | None,
    index_store_type: str,
) -> Settings:
    settings.put_if_absent("cluster.name", cluster_name)
    settings.put_if_absent(common.NODE_NAME, node_name)
    settings.put_if_absent(common.HTTP_PORT, http_port)
    settings.put_if_absent("index.store.type", index_store_type)
    return settings


def apply_default_roles(settings: Settings) -> Settings:
    if common.NODE_ROLES not in settings:
        settings.put_list(common.NODE_ROLES, *common.DEFAULT_NODE_ROLES)
    return settings


def merge_node_settings(
    *,
    ordinal: int,
    paths: NodePaths,
    cluster_name: str,
    http_port: int | None,
    index_store_type: str,
    callback: SettingsCallback | None = None,
    settings: Settings | None = None,
) -> Settings:
    """Build effective settings of a node by applying all the passes in order."""
    settings = settings if settings is not None else Settings()
    apply_callback(settings, ordinal=ordinal, callback=callback)
    apply_paths(settings, paths=paths)
    apply_cluster_values(
        settings,
        cluster_name=cluster_name,
        node_name=common.get_node_name(ordinal),
        http_port=http_port,
        index_store_type=index_store_type,
    )
    apply_default_roles(settings)
    return settings
