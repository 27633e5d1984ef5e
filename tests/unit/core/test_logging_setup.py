"""Tests for logging setup."""

import logging
import uuid

import pytest

from specstate.core.config import Settings
from specstate.core.logger import setup_from_settings, setup_logger


@pytest.fixture
def logger_name():
    name = f"specstate-test-{uuid.uuid4().hex[:8]}"
    yield name
    logger = logging.getLogger(name)
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


class TestSetupLogger:
    """Test logger configuration."""

    def test_console_only(self, logger_name):
        logger = setup_logger(logger_name, file_logging=False)
        assert logger.level == logging.INFO
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0], logging.StreamHandler)

    def test_file_logging(self, logger_name, tmp_path):
        """Test a rotating log file is created in log_dir."""
        logger = setup_logger(logger_name, log_dir=str(tmp_path / "logs"), console_logging=False)
        logger.info("phase approved")
        for handler in logger.handlers:
            handler.flush()
        content = (tmp_path / "logs" / f"{logger_name}.log").read_text()
        assert "phase approved" in content
        assert "[INFO]" in content

    def test_level_case_insensitive(self, logger_name):
        logger = setup_logger(logger_name, level="debug", file_logging=False)
        assert logger.level == logging.DEBUG

    def test_invalid_level(self, logger_name):
        with pytest.raises(ValueError, match="Invalid log level"):
            setup_logger(logger_name, level="VERBOSE", file_logging=False)

    def test_no_duplicate_handlers(self, logger_name):
        """Test repeated setup does not stack handlers."""
        setup_logger(logger_name, file_logging=False)
        logger = setup_logger(logger_name, file_logging=False)
        assert len(logger.handlers) == 1

    def test_reconfigure_changes_level(self, logger_name):
        setup_logger(logger_name, file_logging=False)
        logger = setup_logger(logger_name, level="ERROR", file_logging=False)
        assert logger.level == logging.ERROR
        assert len(logger.handlers) == 1

    def test_foreign_handlers_kept(self, logger_name):
        """Test handlers added by others survive a reconfigure."""
        foreign = logging.NullHandler()
        logging.getLogger(logger_name).addHandler(foreign)
        logger = setup_logger(logger_name, file_logging=False)
        assert foreign in logger.handlers
        assert len(logger.handlers) == 2


class TestSetupFromSettings:
    def test_quiets_request_logging(self, tmp_path):
        settings = Settings(_env_file=None, log_level="INFO", log_dir=str(tmp_path))
        logger = setup_from_settings(settings)
        assert logger.name == "specstate"
        assert logging.getLogger("httpx").level == logging.WARNING
