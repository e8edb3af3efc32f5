"""Tests for wardflow.utils.logger module."""

import logging
from unittest.mock import patch

import pytest

from wardflow.utils.logger import DEFAULT_FORMAT, configure_logger, get_logger


class TestGetLogger:
    """Tests for get_logger function."""

    def test_get_logger_with_explicit_name(self):
        logger = get_logger("wardflow.test")
        assert logger.name == "wardflow.test"

    def test_get_logger_defaults_to_package_logger(self):
        assert get_logger().name == "wardflow"

    def test_get_logger_returns_same_instance_for_same_name(self):
        assert get_logger("wardflow.same") is get_logger("wardflow.same")


class TestConfigureLogger:
    """Tests for configure_logger function."""

    def test_default_settings(self):
        with patch("logging.basicConfig") as basic_config:
            configure_logger()

        basic_config.assert_called_once_with(level=logging.INFO, format=DEFAULT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    def test_level_is_case_insensitive(self):
        with patch("logging.basicConfig") as basic_config:
            configure_logger(level="debug")

        assert basic_config.call_args.kwargs["level"] == logging.DEBUG

    def test_unknown_level(self):
        with pytest.raises(ValueError, match="Unknown log level"):
            configure_logger(level="LOUD")

    def test_file_handler(self, tmp_path):
        log_file = tmp_path / "wardflow.log"
        root = logging.getLogger()
        before = list(root.handlers)

        with patch("logging.basicConfig"):
            configure_logger(add_file_handler=True, file_path=str(log_file))

        added = [h for h in root.handlers if h not in before]
        try:
            assert len(added) == 1
            assert isinstance(added[0], logging.FileHandler)
            assert added[0].baseFilename == str(log_file)
        finally:
            for handler in added:
                root.removeHandler(handler)
                handler.close()

    def test_console_handler_can_be_skipped(self):
        root = logging.getLogger()
        previous = root.level

        try:
            with patch("logging.basicConfig") as basic_config:
                configure_logger(level="WARNING", add_console_handler=False)

            basic_config.assert_not_called()
            assert root.level == logging.WARNING
        finally:
            root.setLevel(previous)
