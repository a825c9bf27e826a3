import logging

import pytest

from shelf.logging_config import LOG_FILENAME, get_logger, reset_logging, setup_logging


@pytest.fixture(autouse=True)
def clean_logging():
    reset_logging()
    yield
    reset_logging()


def test_setup_logging_writes_to_data_dir(tmp_path):
    setup_logging("WARNING", log_dir=tmp_path)
    setup_logging("DEBUG", log_dir=tmp_path / "ignored")

    get_logger("shelf.test").info("hello from the test")
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert "hello from the test" in (tmp_path / LOG_FILENAME).read_text(encoding="utf-8")
    assert not (tmp_path / "ignored").exists()
    assert logging.getLogger("watchdog").level == logging.WARNING


def test_reset_logging_detaches_handlers(tmp_path):
    before = len(logging.getLogger().handlers)
    setup_logging(log_dir=tmp_path)
    assert len(logging.getLogger().handlers) == before + 2

    reset_logging()
    assert len(logging.getLogger().handlers) == before
