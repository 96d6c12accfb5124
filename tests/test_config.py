"""Tests for engine settings."""

import logging

from scoreforge.config import Settings, configure_logging


class TestSettings:

    def test_defaults(self):
        s = Settings(_env_file=None)
        assert s.weight_tolerance == 0.01
        assert s.reason_code_limit == 3
        assert s.bulk_preview_size == 10
        assert s.bulk_workers == 1

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("SCOREFORGE_WEIGHT_TOLERANCE", "0.5")
        monkeypatch.setenv("SCOREFORGE_STRICT_VARIABLE_WEIGHTS", "true")
        s = Settings(_env_file=None)
        assert s.weight_tolerance == 0.5
        assert s.strict_variable_weights is True

    def test_log_level_normalised(self):
        assert Settings(_env_file=None, log_level="debug").log_level == "DEBUG"
        assert Settings(_env_file=None, log_level="chatty").log_level == "INFO"

    def test_configure_logging(self):
        configure_logging("WARNING")
        assert logging.getLogger("scoreforge").level == logging.WARNING
        configure_logging("INFO")
