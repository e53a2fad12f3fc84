"""plugsim.

Pluggable graph state-machine simulations.

A plugin is a Python module declaring ``Graph``, ``Nodes``, ``Edges`` and
``State`` plus ``start``/``step`` entry points. plugsim extracts its type
model, lets a host build graphs of typed values against it, and runs the
plugin over those graphs while keeping a trace of every state.
"""

from plugsim.core.contracts import RunResult
from plugsim.core.exceptions import ErrorKind, PlugsimException
from plugsim.extraction.hints import Intersection, hidden
from plugsim.models.runner_settings import RunnerSettings
from plugsim.plugins.compiler import PythonCompiler
from plugsim.plugins.loader import load_plugin_dir
from plugsim.plugins.plugin import Plugin
from plugsim.runtime.model import Model
from plugsim.runtime.program import Program

__version__ = "0.1.0"

__all__ = [
    "RunResult",
    "ErrorKind",
    "PlugsimException",
    "Intersection",
    "hidden",
    "RunnerSettings",
    "PythonCompiler",
    "load_plugin_dir",
    "Plugin",
    "Model",
    "Program",
]
