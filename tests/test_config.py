"""
Tests for settings loading.
"""

import pytest
from pydantic import ValidationError

from policyflow.config import Settings


class TestSettings:
    """Tests for Settings defaults and environment overrides."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("DB_TYPE", raising=False)
        settings = Settings(_env_file=None)

        assert settings.db_type == "mongo"
        assert settings.worker_batch_limit == 10
        assert settings.referred_list_default_limit == 50
        assert settings.policy_list_max_limit == 100
        assert settings.is_production is False

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("DB_TYPE", "DynamoDB")
        monkeypatch.setenv("WORKER_INTERVAL_SEC", "0.5")
        monkeypatch.setenv("ENV", "prod")
        settings = Settings(_env_file=None)

        assert settings.db_type == "dynamodb"
        assert settings.worker_interval_sec == 0.5
        assert settings.is_production is True

    def test_unknown_backend_rejected(self):
        with pytest.raises(ValidationError):
            Settings(db_type="postgres", _env_file=None)
