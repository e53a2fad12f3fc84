from plugsim.plugins.compiler import PythonCompiler, format_diagnostics
from plugsim.plugins.loader import load_plugin_dir
from plugsim.plugins.plugin import Plugin, PluginTypes, describe_plugin, merge_result_types
from plugsim.plugins.registry import PluginRegistry, PluginRegistryError, load_plugin_dirs

__all__ = [
    "PythonCompiler",
    "format_diagnostics",
    "load_plugin_dir",
    "Plugin",
    "PluginTypes",
    "describe_plugin",
    "merge_result_types",
    "PluginRegistry",
    "PluginRegistryError",
    "load_plugin_dirs",
]
