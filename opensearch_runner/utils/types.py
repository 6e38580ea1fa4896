import pathlib as pl
import typing as tp

FileType = str | pl.Path
# Value of a single node setting, lists are used e.g. for `node.roles`
SettingValue = str | list[str]
SettingsDict = dict[str, SettingValue]
LogFunc = tp.Callable[[str], None]
