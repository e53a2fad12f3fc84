"""
Command-line interface for plugsim.

Loads a plugin directory, reads a model document (JSON or YAML) and runs,
validates or inspects it. Results are printed as JSON.
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import yaml

from plugsim.core.exceptions import ArityMismatch
from plugsim.core.logger import configure_root_logger, get_logger
from plugsim.models.runner_settings import RunnerSettings
from plugsim.plugins.loader import load_plugin_dir
from plugsim.plugins.plugin import Plugin, describe_plugin
from plugsim.runtime.model import Model
from plugsim.runtime.serialization import encode_value
from plugsim.typesystem.environment import Environment
from plugsim.typesystem.types import Type

logger = get_logger(__name__)


def read_document(path: str) -> Dict[str, Any]:
    document_file = Path(path)
    if not document_file.exists():
        raise FileNotFoundError(f"Model file not found: {path}")
    with open(document_file, "r", encoding="utf-8") as f:
        if document_file.suffix == ".json":
            return json.load(f)
        if document_file.suffix in (".yaml", ".yml"):
            return yaml.safe_load(f)
    raise ValueError(f"Unsupported model format: {document_file.suffix}. Use .json or .yaml")


def _parse_argument(plugin: Plugin, raw: str, expected: Type, environment: Environment) -> Any:
    if plugin.bridge.accepts(raw, environment, expected):
        return raw
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def _load(plugin_dir: str, model_path: str) -> Tuple[Plugin, Model]:
    plugin = load_plugin_dir(plugin_dir)
    model = Model.deserialize(plugin, read_document(model_path))
    return plugin, model


def main(
    plugin_dir: str,
    model_path: str,
    arguments: Sequence[str] = (),
    *,
    settings: Optional[RunnerSettings] = None,
) -> Dict[str, Any]:
    """
    Run a plugin over a model.

    Each argument stays a string when its parameter accepts strings and is
    read as JSON otherwise (``3``, ``true``, ``[1, 2]``), falling back to the
    plain string, then converted to the declared parameter type.

    Returns:
        ``{"status", "run_id", "steps", "result"}`` on success or
        ``{"status", "run_id", "steps", "error"}`` when the plugin raised.
    """
    plugin, model = _load(plugin_dir, model_path)
    program = plugin.make_program(model, settings)

    if len(arguments) != len(plugin.types.arguments):
        raise ArityMismatch(len(plugin.types.arguments), len(arguments))
    env = model.environment
    values = [
        plugin.bridge.wrap(_parse_argument(plugin, raw, expected, env), env, expected)
        for raw, expected in zip(arguments, plugin.types.arguments)
    ]
    result = program.run(values)

    output: Dict[str, Any] = {
        "status": "failed" if result.failed else "success",
        "run_id": result.run_id,
        "steps": [encode_value(step) for step in result.steps],
    }
    if result.failed:
        output["error"] = encode_value(result.error)
    else:
        output["result"] = encode_value(result.result)
    return output


def validate_model(plugin_dir: str, model_path: str) -> Dict[str, Any]:
    plugin, model = _load(plugin_dir, model_path)
    error = plugin.make_program(model).validate()
    if error is None:
        logger.info("Model is valid")
        return {"status": "valid"}
    return {"status": "invalid", "error": encode_value(error)}


def inspect_plugin(plugin_dir: str) -> Dict[str, Any]:
    return describe_plugin(load_plugin_dir(plugin_dir))


def cli(argv: Optional[List[str]] = None) -> None:
    """
    Command-line interface for plugsim.

    Usage:
        plugsim run plugins/dfa model.json 0110
        plugsim validate plugins/dfa model.json
        plugsim inspect plugins/dfa
    """
    parser = argparse.ArgumentParser(
        prog="plugsim",
        description="Run graph state-machine plugins",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    run_parser = subparsers.add_parser("run", help="Run a plugin over a model")
    run_parser.add_argument("plugin_dir", help="Plugin directory (with plugin.yaml/plugin.json)")
    run_parser.add_argument("model", help="Model document (JSON or YAML)")
    run_parser.add_argument("arguments", nargs="*", help="Program arguments")
    run_parser.add_argument("--max-steps", type=int, default=None, help="Stop runs after this many steps")

    validate_parser = subparsers.add_parser("validate", help="Smoke-test a model against its plugin")
    validate_parser.add_argument("plugin_dir", help="Plugin directory")
    validate_parser.add_argument("model", help="Model document (JSON or YAML)")

    inspect_parser = subparsers.add_parser("inspect", help="Print the type model of a plugin")
    inspect_parser.add_argument("plugin_dir", help="Plugin directory")

    args = parser.parse_args(argv)
    configure_root_logger("DEBUG" if args.verbose else "INFO")

    if args.command == "run":
        try:
            settings = RunnerSettings(max_steps=args.max_steps)
            result = main(args.plugin_dir, args.model, args.arguments, settings=settings)
            print(json.dumps(result, indent=2))
            sys.exit(0 if result["status"] == "success" else 1)
        except Exception as e:
            logger.error(f"Run failed: {e}")
            sys.exit(1)

    elif args.command == "validate":
        try:
            result = validate_model(args.plugin_dir, args.model)
            print(json.dumps(result, indent=2))
            sys.exit(0 if result["status"] == "valid" else 1)
        except Exception as e:
            logger.error(f"Validation failed: {e}")
            sys.exit(1)

    elif args.command == "inspect":
        try:
            print(json.dumps(inspect_plugin(args.plugin_dir), indent=2))
            sys.exit(0)
        except Exception as e:
            logger.error(f"Inspect failed: {e}")
            sys.exit(1)

    else:
        parser.print_help()
        sys.exit(0)


if __name__ == "__main__":
    cli()
