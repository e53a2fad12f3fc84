"""
Compiler service for Python plugin sources.

Compiles plugin source text and executes it into a fresh module. Problems
are reported as diagnostics rather than raised, the way a compiler reports
them: syntax errors are ``syntactic``, exceptions raised while executing the
module body are ``semantic`` and compile-time warnings are ``global``.
"""

from __future__ import annotations

import linecache
import sys
import traceback
import types
import uuid
import warnings
from pathlib import Path
from typing import Iterable, Mapping, Optional, Union

from plugsim.core.contracts import CompilationResult, Diagnostic
from plugsim.core.logger import get_logger

logger = get_logger(__name__)

MODULE_PREFIX = "plugsim_plugin_"


def _syntax_diagnostic(exc: SyntaxError, path: str) -> Diagnostic:
    offset = exc.offset or 1
    length = 1
    if exc.end_lineno == exc.lineno and exc.end_offset and exc.end_offset > offset:
        length = exc.end_offset - offset
    return Diagnostic(line=exc.lineno or 0, column=offset - 1, length=length, message=exc.msg, file=path)


def _runtime_diagnostic(exc: BaseException, path: str) -> Diagnostic:
    frames = [f for f in traceback.extract_tb(exc.__traceback__) if f.filename == path]
    message = f"{type(exc).__name__}: {exc}"
    if not frames:
        return Diagnostic(line=0, column=0, length=0, message=message, file=None)
    frame = frames[-1]
    column = getattr(frame, "colno", None) or 0
    end = getattr(frame, "end_colno", None) or column
    return Diagnostic(line=frame.lineno or 0, column=column, length=max(end - column, 1), message=message, file=path)


class PythonCompiler:
    """
    Turns plugin source into an executed module.

    The module is registered in ``sys.modules`` under a unique name so that
    annotation evaluation and ``typing.get_overloads`` can find it, and its
    source is put into ``linecache`` so tracebacks from plugin code show
    the offending lines.
    """

    def compile(
        self,
        source: str,
        directory: Optional[Path] = None,
        file_name: str = "plugin.py",
    ) -> CompilationResult:
        path = str(Path(directory) / file_name) if directory is not None else file_name
        result = CompilationResult(source=source, module=None, file_name=file_name)

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            try:
                code = compile(source, path, "exec", dont_inherit=True)
            except SyntaxError as exc:
                result.diagnostics["syntactic"].append(_syntax_diagnostic(exc, path))
                logger.info(f"Plugin {path} failed to parse: {exc.msg} (line {exc.lineno})")
                return result
        for warning in caught:
            result.diagnostics["global"].append(
                Diagnostic(line=warning.lineno, column=0, length=0, message=str(warning.message), file=path)
            )

        module_name = f"{MODULE_PREFIX}{uuid.uuid4().hex}"
        module = types.ModuleType(module_name)
        module.__file__ = path
        linecache.cache[path] = (len(source), None, source.splitlines(True), path)
        sys.modules[module_name] = module

        search_path = str(directory) if directory is not None else None
        if search_path is not None:
            sys.path.insert(0, search_path)
        try:
            exec(code, module.__dict__)  # noqa: S102 - executing plugin code is the point
        except Exception as exc:
            sys.modules.pop(module_name, None)
            result.diagnostics["semantic"].append(_runtime_diagnostic(exc, path))
            logger.info(f"Plugin {path} raised while loading: {type(exc).__name__}: {exc}")
            return result
        finally:
            if search_path is not None and search_path in sys.path:
                sys.path.remove(search_path)

        result.module = module
        logger.debug(f"Compiled plugin {path} as module {module_name}")
        return result

    def unload(self, result: CompilationResult) -> None:
        """
        Drop a compiled module from ``sys.modules``.

        Modules stay registered until unloaded, so hosts that recompile
        plugins should unload the ones they replace. Plugins built from the
        result keep working; only name-based lookups such as
        ``typing.get_overloads`` stop finding the module.
        """
        if result.module is None:
            return
        name = result.module.__name__
        if sys.modules.get(name) is result.module:
            del sys.modules[name]
            logger.debug(f"Unloaded plugin module {name}")


def format_diagnostics(
    diagnostics: Iterable[Diagnostic],
    sources: Union[str, Mapping[str, str], None] = None,
) -> str:
    """
    Render diagnostics for display, with the offending line underlined::

        plugin.py 3, 4: invalid syntax
        def start(graph
            ~
    """
    lines = []
    for diagnostic in diagnostics:
        if diagnostic.file is None:
            lines.append(f"unknown file: {diagnostic.message}")
            continue
        lines.append(f"{diagnostic.file} {diagnostic.line}, {diagnostic.column}: {diagnostic.message}")
        if isinstance(sources, str):
            text: Optional[str] = sources
        elif sources is not None:
            text = sources.get(diagnostic.file)
        else:
            text = None
        source_lines = text.splitlines() if text is not None else []
        if 1 <= diagnostic.line <= len(source_lines):
            lines.append(source_lines[diagnostic.line - 1].replace("\t", " "))
            lines.append(" " * diagnostic.column + "~" * diagnostic.length)
    return "\n".join(lines)
