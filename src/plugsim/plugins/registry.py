from __future__ import annotations

from pathlib import Path
from typing import ClassVar, Dict, Iterable, List, Optional, Union

from plugsim.core.logger import get_logger
from plugsim.plugins.loader import MANIFEST_NAMES, load_plugin_dir
from plugsim.plugins.plugin import Plugin

logger = get_logger(__name__)


class PluginRegistryError(RuntimeError):
    pass


class PluginRegistry:
    """Loaded plugins keyed by their kind path (``"Formal Languages/DFA"``)."""

    _registry: ClassVar[Dict[str, Plugin]] = {}

    @classmethod
    def register(cls, plugin: Plugin, *, overwrite: bool = False) -> None:
        key = plugin.name
        if not overwrite and key in cls._registry:
            raise PluginRegistryError(f"Plugin already registered for kind={key!r}: {cls._registry[key]}")
        cls._registry[key] = plugin

    @classmethod
    def get(cls, kind: str) -> Plugin:
        try:
            return cls._registry[kind]
        except KeyError as exc:
            raise PluginRegistryError(f"No plugin registered for kind={kind!r}") from exc

    @classmethod
    def try_get(cls, kind: str) -> Optional[Plugin]:
        return cls._registry.get(kind)

    @classmethod
    def list(cls) -> List[str]:
        return sorted(cls._registry)

    @classmethod
    def clear(cls) -> None:
        cls._registry.clear()


def load_plugin_dirs(
    directories: Iterable[Union[str, Path]],
    *,
    overwrite: bool = False,
) -> List[Plugin]:
    """
    Load every plugin directory and register it.

    A directory without a manifest is searched one level down, so a folder
    of plugins can be passed as a single entry.
    """
    loaded: List[Plugin] = []
    for entry in directories:
        root = Path(entry)
        candidates = [root]
        if not _has_manifest(root):
            candidates = sorted(p for p in root.iterdir() if p.is_dir() and _has_manifest(p))
        for directory in candidates:
            plugin = load_plugin_dir(directory)
            PluginRegistry.register(plugin, overwrite=overwrite)
            loaded.append(plugin)
    logger.info(f"Registered {len(loaded)} plugin(s)")
    return loaded


def _has_manifest(directory: Path) -> bool:
    return any((directory / name).is_file() for name in MANIFEST_NAMES)
