# tests/test_config.py
"""Tests for settings validation."""
import pytest

from fieldservice.config import Settings, validate_or_warn, warn_on_risky_config


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


class TestSettings:
    def test_defaults(self):
        s = _settings()
        assert s.location_throttle_seconds == 30
        assert s.active_window_minutes == 5
        assert s.notification_max_retries == 3
        assert s.customer_notification_channel == "EMAIL"
        assert s.storage_backend == "memory"

    def test_pg_connect_kwargs_prefers_database_url(self):
        s = _settings(database_url="postgresql://u:p@db:5432/dispatch")
        kwargs = s.pg_connect_kwargs
        assert kwargs["dsn"] == "postgresql://u:p@db:5432/dispatch"
        assert "host" not in kwargs
        assert kwargs["server_settings"]["statement_timeout"] == "30000"

    def test_pg_connect_kwargs_discrete(self):
        kwargs = _settings(pghost="db", pgdatabase="dispatch").pg_connect_kwargs
        assert kwargs["host"] == "db"
        assert kwargs["database"] == "dispatch"
        assert "dsn" not in kwargs


class TestProductionValidation:
    def test_non_prod_never_missing(self):
        assert _settings(app_env="dev").validate_required_for_production() == []

    def test_prod_requires_postgres_and_credentials(self):
        s = _settings(app_env="prod", email_provider="smtp", sms_provider="twilio")
        missing = s.validate_required_for_production()
        assert "storage_backend=postgres" in missing
        assert "smtp_host" in missing
        assert "twilio_auth_token" in missing

    def test_validate_or_warn_raises_in_prod(self):
        with pytest.raises(RuntimeError, match="Missing required settings"):
            validate_or_warn(_settings(app_env="prod"))

    def test_validate_or_warn_prints_warnings(self, capsys):
        validate_or_warn(_settings(location_throttle_seconds=0))
        out = capsys.readouterr().out
        assert "[WARN][config]" in out
        assert "not throttled" in out

    def test_risky_config_warnings(self):
        warnings = warn_on_risky_config(_settings(notification_max_retries=0))
        assert any("never retried" in w for w in warnings)
        assert any("storage_backend=memory" in w for w in warnings)
