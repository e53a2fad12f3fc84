"""
Plugin directory loading.

A plugin directory holds a manifest (``plugin.yaml``, ``plugin.yml`` or
``plugin.json``) naming the plugin kind and its entry file::

    kind: [Formal Languages, DFA]
    plugin-file: plugin.py
    description: Deterministic finite automaton
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from pydantic import ValidationError

from plugsim.core.contracts import CompilerService
from plugsim.core.exceptions import ManifestError, PluginCompilationError
from plugsim.core.logger import get_logger
from plugsim.models.plugin_manifest import PluginManifest
from plugsim.plugins.compiler import PythonCompiler, format_diagnostics
from plugsim.plugins.plugin import Plugin

logger = get_logger(__name__)

MANIFEST_NAMES = ("plugin.yaml", "plugin.yml", "plugin.json")


def find_manifest(directory: Path) -> Path:
    for name in MANIFEST_NAMES:
        candidate = directory / name
        if candidate.is_file():
            return candidate
    raise ManifestError(f"No plugin manifest ({', '.join(MANIFEST_NAMES)}) in {directory}")


def read_manifest(path: Path) -> PluginManifest:
    with open(path, "r", encoding="utf-8") as f:
        if path.suffix == ".json":
            raw: Any = json.load(f)
        else:
            raw = yaml.safe_load(f)
    if not isinstance(raw, dict):
        raise ManifestError(f"Manifest {path} must contain a mapping")
    try:
        return PluginManifest.model_validate(raw)
    except ValidationError as exc:
        raise ManifestError(f"Invalid manifest {path}: {exc}") from exc


def load_plugin_dir(
    directory: Union[str, Path],
    compiler: Optional[CompilerService] = None,
) -> Plugin:
    """Read the manifest of ``directory``, compile its entry file and build the plugin."""
    directory = Path(directory)
    if not directory.is_dir():
        raise ManifestError(f"Plugin directory not found: {directory}")

    manifest = read_manifest(find_manifest(directory))
    plugin_path = directory / manifest.plugin_file
    if not plugin_path.is_file():
        raise ManifestError(f"Plugin file {manifest.plugin_file} not found in {directory}")

    logger.info(f"Loading plugin {manifest.kind_path} from {plugin_path}")
    source = plugin_path.read_text(encoding="utf-8")
    result = (compiler or PythonCompiler()).compile(source, directory, plugin_path.name)
    if not result.ok:
        rendered = format_diagnostics(result.all_diagnostics(), {str(plugin_path): source})
        logger.error(f"Plugin {manifest.kind_path} failed to compile:\n{rendered}")
        raise PluginCompilationError(str(plugin_path), dict(result.diagnostics))
    return Plugin(result, manifest=manifest)
