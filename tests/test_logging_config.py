"""Tests for quiet/debug modes and the per-store operations log."""

import logging

import pytest

from hablare.logging_config import (
    OPS_LOG_FILENAME,
    configure_ops_log,
    configure_quiet_mode,
    remove_ops_log,
)


@pytest.fixture
def ops_handler(tmp_path):
    handler = configure_ops_log(tmp_path)
    yield handler
    remove_ops_log(handler)


class TestQuietMode:

    def test_library_loggers_silenced_and_restored(self):
        configure_quiet_mode(True)
        assert logging.getLogger("openai").level == logging.ERROR
        assert logging.getLogger("httpx").level == logging.ERROR
        configure_quiet_mode(False)
        assert logging.getLogger("openai").level == logging.NOTSET
        configure_quiet_mode(True)


class TestOpsLog:

    def test_info_written_to_store(self, tmp_path, ops_handler):
        logging.getLogger("hablare.requestors.base").info("Stored 10 bytes")
        ops_handler.flush()
        text = (tmp_path / OPS_LOG_FILENAME).read_text()
        assert "Stored 10 bytes" in text
        assert "INFO" in text

    def test_debug_not_written(self, tmp_path, ops_handler):
        logging.getLogger("hablare").debug("noise")
        ops_handler.flush()
        assert "noise" not in (tmp_path / OPS_LOG_FILENAME).read_text()

    def test_same_store_reuses_handler(self, tmp_path, ops_handler):
        assert configure_ops_log(tmp_path) is ops_handler
        handlers = [h for h in logging.getLogger("hablare").handlers if h is ops_handler]
        assert len(handlers) == 1

    def test_remove_detaches(self, tmp_path):
        handler = configure_ops_log(tmp_path / "other")
        remove_ops_log(handler)
        assert handler not in logging.getLogger("hablare").handlers
