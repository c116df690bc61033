# =============================================================================
# Logging Setup Tests
# =============================================================================

import logging
import logging.handlers

import pytest

from smartmail.logging_cfg import NOISY_LOGGERS, setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def test_file_and_console_handlers(tmp_path):
    log_file = tmp_path / "state" / "smartmail.log"

    setup_logging(log_file=log_file)

    root = logging.getLogger()
    file_handlers = [h for h in root.handlers
                     if isinstance(h, logging.handlers.RotatingFileHandler)]
    assert len(file_handlers) == 1
    assert root.level == logging.INFO
    assert log_file.parent.is_dir()

    logging.getLogger("smartmail.test").info("written to file")
    file_handlers[0].flush()
    assert "written to file" in log_file.read_text(encoding="utf-8")


def test_debug_mode_without_file():
    setup_logging(debug=True)

    root = logging.getLogger()
    assert root.level == logging.DEBUG
    assert [type(h) for h in root.handlers] == [logging.StreamHandler]
    for name in NOISY_LOGGERS:
        assert logging.getLogger(name).level == logging.WARNING
