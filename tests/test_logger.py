import logging

import pytest

from plugsim.core.exceptions import ErrorKind, PluginRuntimeFailure, TypeMismatch
from plugsim.core.logger import configure_root_logger, current_run_id, push_run_id, reset_run_id


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    handlers = list(root.handlers)
    yield
    root.handlers[:] = handlers
    logging.getLogger("plugsim").setLevel(logging.NOTSET)


def test_configure_root_logger_is_idempotent():
    configure_root_logger("DEBUG")
    count = len(logging.getLogger().handlers)
    configure_root_logger("WARNING")

    assert len(logging.getLogger().handlers) == count
    assert logging.getLogger("plugsim").level == logging.WARNING


def test_run_id_is_injected_into_records():
    configure_root_logger("INFO")
    handler = next(h for h in logging.getLogger().handlers if h.filters)
    record = logging.LogRecord("plugsim.test", logging.INFO, __file__, 1, "hello", None, None)

    token = push_run_id("abc123")
    try:
        handler.filter(record)
        assert current_run_id() == "abc123"
    finally:
        reset_run_id(token)

    assert record.run_id == "abc123"
    assert current_run_id() == "-"
    assert push_run_id(None) is None


def test_errors_carry_their_kind():
    assert TypeMismatch("x").kind is ErrorKind.TYPE_MISMATCH

    try:
        raise KeyError("missing")
    except KeyError as exc:
        failure = PluginRuntimeFailure.from_exception(exc)

    assert failure.error_kind == "KeyError"
    assert failure.message == "'missing'"
    assert "KeyError" in failure.stack
