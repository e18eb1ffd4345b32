import json
import logging

import pytest

from widget_manager.core.logging_config import (
    LOG_FILE_NAME,
    ConsoleFormatter,
    StructuredFormatter,
    log_error_with_context,
    setup_logging,
)


@pytest.fixture
def root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in root.handlers:
        handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def _record(message="hello", **context):
    record = logging.LogRecord("widget_manager.test", logging.INFO, __file__, 1, message, None, None)
    if context:
        record.extra_data = context
    return record


def test_structured_formatter_merges_context():
    entry = json.loads(StructuredFormatter().format(_record(model_id="m1")))

    assert entry["message"] == "hello"
    assert entry["level"] == "INFO"
    assert entry["model_id"] == "m1"


def test_console_formatter_appends_context_without_color():
    line = ConsoleFormatter().format(_record(comm_id="c1"))

    assert line.endswith("[widget_manager.test] hello comm_id=c1")
    assert "\033[" not in line


def test_file_logging_writes_json_lines(root_logger, tmp_path):
    setup_logging({
        "log_level": "WARNING",
        "log_dir": str(tmp_path),
        "enable_console_logging": False,
        "enable_file_logging": True,
    })
    logger = logging.getLogger("widget_manager.test")
    logger.info("dropped")
    log_error_with_context(logger, ValueError("bad state"), "model construction", model_id="m1")
    for handler in root_logger.handlers:
        handler.flush()

    lines = (tmp_path / LOG_FILE_NAME).read_text(encoding="utf-8").splitlines()
    assert len(lines) == 1
    entry = json.loads(lines[0])
    assert entry["error_type"] == "ValueError"
    assert entry["operation"] == "model construction"
    assert entry["model_id"] == "m1"


def test_verbose_forces_debug_and_quiets_websockets(root_logger):
    setup_logging({"log_level": "ERROR", "enable_file_logging": False}, verbose=True)

    assert root_logger.level == logging.DEBUG
    assert logging.getLogger("websockets").level == logging.WARNING
