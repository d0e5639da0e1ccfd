"""Settings tests."""

import pytest

from slotting.config import DEFAULT_REGION, SlottingSettings, load_env_file
from slotting.errors import ConfigurationError


class TestFromEnv:
    """Environment variables and defaults."""

    def test_defaults(self):
        settings = SlottingSettings.from_env({})
        assert settings.region_name == DEFAULT_REGION
        assert settings.table_prefix == ""
        assert settings.audit_bucket is None
        assert settings.default_trigger_threshold == 80.0
        assert settings.move_ratio == 0.5
        assert settings.log_level == "INFO"

    def test_values(self):
        settings = SlottingSettings.from_env({
            "AWS_DEFAULT_REGION": "eu-west-1",
            "SLOTTING_TABLE_PREFIX": "test-",
            "SLOTTING_AUDIT_BUCKET": "audit-bucket",
            "SLOTTING_DEFAULT_TRIGGER_THRESHOLD": "75",
            "SLOTTING_MOVE_RATIO": "0.25",
            "SLOTTING_LOG_LEVEL": "debug",
        })
        assert settings.region_name == "eu-west-1"
        assert settings.table_name("Inventory") == "test-Inventory"
        assert settings.audit_bucket == "audit-bucket"
        assert settings.default_trigger_threshold == 75.0
        assert settings.move_ratio == 0.25
        assert settings.log_level == "DEBUG"

    def test_invalid_number(self):
        with pytest.raises(ConfigurationError):
            SlottingSettings.from_env({"SLOTTING_MOVE_RATIO": "half"})

    def test_move_ratio_out_of_range(self):
        with pytest.raises(ConfigurationError):
            SlottingSettings.from_env({"SLOTTING_MOVE_RATIO": "1.5"})

    def test_threshold_out_of_range(self):
        with pytest.raises(ConfigurationError):
            SlottingSettings(default_trigger_threshold=120)


class TestEnvFile:
    """.env loading never overrides the process environment."""

    def test_env_file_does_not_override(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text("SLOTTING_TABLE_PREFIX=from-file-\nSLOTTING_AUDIT_BUCKET=file-bucket\n")
        monkeypatch.setenv("SLOTTING_TABLE_PREFIX", "from-env-")
        monkeypatch.delenv("SLOTTING_AUDIT_BUCKET", raising=False)

        assert load_env_file(env_file) is True
        settings = SlottingSettings.from_env(load_file=False)
        assert settings.table_prefix == "from-env-"
        assert settings.audit_bucket == "file-bucket"
        monkeypatch.delenv("SLOTTING_AUDIT_BUCKET", raising=False)
