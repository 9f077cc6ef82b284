# Directory: tests/
# Filename: test_logging.py

#############################################################
##
## Covers utils/logging_config.py.
##
## Run this test with the following command:
## pytest tests/test_logging.py --cov=utils.logging_config --cov-report term-missing
##
#############################################################

import logging
from unittest.mock import patch, MagicMock

import pytest

from utils.logging_config import NODE_LOG_LEVELS, resolve_level, setup_logging, setup_logging_from_env


@pytest.fixture(autouse=True)
def restore_root_logger():
    """setup_logging rewires the root logger; put it back after each test."""
    root = logging.getLogger()
    saved_handlers = root.handlers[:]
    saved_level = root.level
    yield
    for handler in root.handlers[:]:
        if handler not in saved_handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(saved_level)


class TestLoggingConfig:
    """Tests for setup_logging in utils/logging_config.py"""

    def test_file_handler_exception_with_console(self):
        """
        GIVEN FileHandler creation fails and console logging is on,
        THEN the failure is reported through the root logger.
        """
        with patch('utils.logging_config.logging.getLogger') as mock_get_logger, \
             patch('utils.logging_config.logging.FileHandler', side_effect=OSError("Permission Denied")):
            mock_logger_instance = MagicMock()
            mock_get_logger.return_value = mock_logger_instance

            setup_logging(log_file_path="/unwritable/path/test.log")

            mock_logger_instance.error.assert_called_once()
            call_args, call_kwargs = mock_logger_instance.error.call_args
            assert "Error setting up file logging" in call_args[0]
            assert "Permission Denied" in call_args[0]
            assert call_kwargs.get('exc_info') is True

    def test_file_handler_exception_no_console(self, capsys):
        """
        GIVEN FileHandler creation fails and console logging is off,
        THEN the failure is printed to stderr.
        """
        with patch('utils.logging_config.logging.FileHandler', side_effect=OSError("Permission Denied")):
            setup_logging(log_to_console=False, log_file_path="/unwritable/path/test.log")

        captured = capsys.readouterr()
        assert "Error setting up file logging" in captured.err
        assert "Permission Denied" in captured.err

    def test_invalid_level_override_is_reported(self):
        with patch('utils.logging_config.logging.getLogger') as mock_get_logger:
            mock_logger_instance = MagicMock()
            mock_get_logger.return_value = mock_logger_instance

            setup_logging(level_overrides={'some_logger': 'NOT_A_LEVEL'})

            messages = [c.args[0] for c in mock_logger_instance.error.call_args_list]
            assert any("Could not set log level for 'some_logger'" in m for m in messages)

    def test_invalid_root_level_falls_back_to_info(self, capsys):
        setup_logging(root_level="LOUD", log_to_console=False)
        assert logging.getLogger().level == logging.INFO
        assert "Could not set root log level" in capsys.readouterr().err

    def test_levels_applied(self):
        setup_logging(root_level="debug", level_overrides={"NodeFSM": "WARNING"}, log_to_console=False)
        assert logging.getLogger().level == logging.DEBUG
        assert logging.getLogger("NodeFSM").level == logging.WARNING
        assert logging.getLogger("transitions").level == NODE_LOG_LEVELS["transitions"]
        setup_logging(log_to_console=False)

    def test_file_logging_writes_records(self, tmp_path):
        log_path = tmp_path / "logs" / "node.log"
        setup_logging(log_to_console=False, log_file_path=str(log_path), log_file_mode="w")
        logging.getLogger("NodeFSM").info("hello from the node")
        for handler in logging.getLogger().handlers:
            handler.flush()
        assert "hello from the node" in log_path.read_text(encoding='utf-8')

    def test_repeated_setup_does_not_duplicate_handlers(self):
        setup_logging()
        setup_logging()
        assert len(logging.getLogger().handlers) == 1

    def test_setup_from_env(self, tmp_path, monkeypatch):
        log_path = tmp_path / "env.log"
        monkeypatch.setenv("SMARTNODE_LOG_FILE", str(log_path))
        monkeypatch.setenv("SMARTNODE_LOG_LEVEL", "WARNING")
        root = setup_logging_from_env(log_to_console=False)
        assert root.level == logging.WARNING
        assert any(isinstance(h, logging.FileHandler) for h in root.handlers)


@pytest.mark.parametrize("level, expected", [
    ("debug", logging.DEBUG),
    ("INFO", logging.INFO),
    (logging.ERROR, logging.ERROR),
])
def test_resolve_level(level, expected):
    assert resolve_level(level) == expected


def test_resolve_level_rejects_unknown():
    with pytest.raises(ValueError):
        resolve_level("chatty")
