"""Tests for logging setup."""

import structlog

from buyflow.infrastructure.config import Settings
from buyflow.infrastructure.logging import configure_logging


class TestConfigureLogging:
    def teardown_method(self) -> None:
        structlog.reset_defaults()

    def test_json_renderer_by_default(self) -> None:
        configure_logging(Settings(_env_file=None))

        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)

    def test_console_renderer(self) -> None:
        configure_logging(Settings(_env_file=None, json_logs=False, log_level="debug"))

        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)
