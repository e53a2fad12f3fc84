import json
import logging

import pytest
import yaml

from plugsim.cli import cli, inspect_plugin, main, read_document, validate_model
from plugsim.core.exceptions import ArityMismatch
from plugsim.models.runner_settings import RunnerSettings
from plugsim.runtime.model import Model


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    handlers = list(root.handlers)
    yield
    root.handlers[:] = handlers
    logging.getLogger("plugsim").setLevel(logging.NOTSET)


@pytest.fixture
def dfa_files(tmp_path, plugins_dir, mod3_dfa):
    model, _ = mod3_dfa
    model_path = tmp_path / "mod3.json"
    model_path.write_text(json.dumps(model.serialize()))
    return str(plugins_dir / "dfa"), str(model_path)


@pytest.fixture
def shapes_files(tmp_path, plugins_dir, shapes_model):
    model_path = tmp_path / "sketch.yaml"
    model_path.write_text(yaml.safe_dump(shapes_model.serialize()))
    return str(plugins_dir / "shapes"), str(model_path)


def test_main_runs_the_plugin(dfa_files):
    plugin_dir, model_path = dfa_files

    output = main(plugin_dir, model_path, ["110"])

    assert output["status"] == "success"
    assert output["result"] is True
    assert len(output["steps"]) == 4
    assert output["steps"][0]["type"] == "State"
    assert output["steps"][0]["data"]["input_left"] == "110"
    assert output["steps"][0]["data"]["active"]["kind"] == "pointer"


def test_main_reads_yaml_models(shapes_files):
    plugin_dir, model_path = shapes_files

    output = main(plugin_dir, model_path)

    assert output["result"] == 10


def test_main_reads_json_arguments(tmp_path, plugins_dir, countdown_plugin):
    model_path = tmp_path / "clock.json"
    model_path.write_text(json.dumps(Model(countdown_plugin).serialize()))

    output = main(str(plugins_dir / "countdown"), str(model_path), ["5"])

    assert output["result"] is True
    assert len(output["steps"]) == 6


def test_main_rejects_wrong_arity(dfa_files):
    plugin_dir, model_path = dfa_files

    with pytest.raises(ArityMismatch):
        main(plugin_dir, model_path, [])


def test_main_reports_step_limit(shapes_files):
    plugin_dir, model_path = shapes_files

    output = main(plugin_dir, model_path, settings=RunnerSettings(max_steps=2))

    assert output["status"] == "failed"
    assert output["error"]["kind"] == "record"
    assert output["error"]["data"]["kind"] == "StepLimitExceeded"


def test_validate_model(dfa_files):
    assert validate_model(*dfa_files) == {"status": "valid"}


def test_read_document_formats(tmp_path):
    (tmp_path / "m.yml").write_text("elements: []\n")
    (tmp_path / "m.txt").write_text("")

    assert read_document(str(tmp_path / "m.yml")) == {"elements": []}
    with pytest.raises(ValueError, match="Unsupported model format"):
        read_document(str(tmp_path / "m.txt"))
    with pytest.raises(FileNotFoundError):
        read_document(str(tmp_path / "missing.json"))


def test_inspect_plugin(plugins_dir):
    description = inspect_plugin(str(plugins_dir / "countdown"))

    assert description["kind"] == ["Testing", "Countdown"]
    assert description["result"] == "boolean"


def test_cli_run_prints_json(dfa_files, capsys):
    plugin_dir, model_path = dfa_files

    with pytest.raises(SystemExit) as excinfo:
        cli(["run", plugin_dir, model_path, "11"])

    assert excinfo.value.code == 0
    assert json.loads(capsys.readouterr().out)["result"] is True


def test_cli_run_failure_exits_nonzero(dfa_files):
    plugin_dir, model_path = dfa_files

    with pytest.raises(SystemExit) as excinfo:
        cli(["run", plugin_dir, model_path])

    assert excinfo.value.code == 1


def test_cli_validate_and_inspect(dfa_files, capsys):
    plugin_dir, model_path = dfa_files

    with pytest.raises(SystemExit) as excinfo:
        cli(["validate", plugin_dir, model_path])
    assert excinfo.value.code == 0
    assert json.loads(capsys.readouterr().out) == {"status": "valid"}

    with pytest.raises(SystemExit) as excinfo:
        cli(["--verbose", "inspect", plugin_dir])
    assert excinfo.value.code == 0
    assert json.loads(capsys.readouterr().out)["arguments"] == ["string"]


def test_cli_without_command_prints_help(capsys):
    with pytest.raises(SystemExit) as excinfo:
        cli([])

    assert excinfo.value.code == 0
    assert "usage: plugsim" in capsys.readouterr().out
