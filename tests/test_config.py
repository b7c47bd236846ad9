"""
Tests for environment-driven settings and the logging configuration.
"""

from catalog_import.core.config import Settings
from catalog_import.core.logging_config import LOG_FORMAT, build_logging_config
from catalog_import.domain.imports.models import EmptyFilePolicy


class TestSettings:

    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.max_concurrent_jobs == 2
        assert settings.progress_update_interval_rows == 100
        assert settings.upload_max_file_size_mb == 10
        assert EmptyFilePolicy(settings.empty_file_policy) == EmptyFilePolicy.COMPLETE

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("MAX_CONCURRENT_JOBS", "5")
        monkeypatch.setenv("EMPTY_FILE_POLICY", "fail")
        monkeypatch.setenv("JOB_RETENTION_HOURS", "0")

        settings = Settings(_env_file=None)

        assert settings.max_concurrent_jobs == 5
        assert EmptyFilePolicy(settings.empty_file_policy) == EmptyFilePolicy.FAIL
        assert settings.job_retention_hours == 0


class TestLoggingConfig:

    def test_level_applies_to_root_and_package(self):
        config = build_logging_config("debug")

        assert config["root"]["level"] == "DEBUG"
        assert config["loggers"]["catalog_import"]["level"] == "DEBUG"
        assert config["formatters"]["import_service"]["format"] == LOG_FORMAT

    def test_sql_echo_is_kept_quiet(self):
        config = build_logging_config("DEBUG")
        assert config["loggers"]["sqlalchemy.engine"]["level"] == "WARNING"
