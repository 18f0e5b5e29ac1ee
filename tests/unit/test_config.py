"""
Unit Tests - Configuration
"""
import logging

import pytest
import structlog
from pydantic import ValidationError

from salesopt.config import Settings
from salesopt.config.logging import configure_logging


class TestSettings:
    """Tests for Settings"""

    def test_test_settings(self, test_settings):
        assert test_settings.app_env == "testing"
        assert not test_settings.is_production
        assert test_settings.analysis.scale_threshold == 0.05
        assert test_settings.database.url.startswith("sqlite+aiosqlite://")

    def test_unknown_environment_rejected(self):
        with pytest.raises(ValidationError):
            Settings(app_env="qa")

    def test_analysis_thresholds_from_environment(self, monkeypatch):
        """Test ANALYSIS_ variables override the gate thresholds"""
        monkeypatch.setenv("ANALYSIS_SCALE_THRESHOLD", "0.1")
        monkeypatch.setenv("ANALYSIS_MAX_NEGATIVE_PERIODS", "2")

        settings = Settings()

        assert settings.analysis.scale_threshold == 0.1
        assert settings.analysis.max_negative_periods == 2

    def test_data_zones_from_environment(self, monkeypatch):
        monkeypatch.setenv("DATA_RAW_PATH", "/lake/raw")
        monkeypatch.setenv("DATA_CURATED_PATH", "/lake/curated")

        settings = Settings()

        assert settings.data_lake.raw_path == "/lake/raw"
        assert settings.data_lake.curated_path == "/lake/curated"


class TestConfigureLogging:
    """Tests for configure_logging"""

    @pytest.fixture
    def restore_logging(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield root
        root.handlers = handlers
        root.setLevel(level)
        for name in ["prefect", "sqlalchemy.engine"]:
            logging.getLogger(name).propagate = True
        structlog.reset_defaults()

    def test_single_stdout_handler(self, restore_logging):
        """Test the root logger ends up with one handler at the requested level"""
        configure_logging(log_level="DEBUG", log_format="json")

        assert len(restore_logging.handlers) == 1
        assert restore_logging.level == logging.DEBUG
        assert not logging.getLogger("prefect").propagate
