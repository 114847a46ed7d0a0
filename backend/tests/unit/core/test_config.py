"""Tests for config secret validation and review lifecycle defaults."""

from unittest.mock import patch

import pytest
from pydantic import ValidationError

from reputation.core.config import Settings

BASE_ENV = {
    "SUPABASE_URL": "https://test.supabase.co",
    "SUPABASE_SERVICE_ROLE_KEY": "test-service-key",
    "JWT_SECRET": "test-jwt-secret",
}


class TestSecretValidation:
    """Test that required secrets are validated at startup."""

    def test_missing_single_secret_raises_error(self):
        """Missing one required secret raises ValueError."""
        env = {**BASE_ENV, "SUPABASE_URL": ""}
        with patch.dict("os.environ", env, clear=True):
            with pytest.raises(ValidationError) as exc_info:
                Settings(_env_file=None)

            assert "SUPABASE_URL" in str(exc_info.value)

    def test_missing_multiple_secrets_lists_all(self):
        """Missing multiple secrets lists all in error message."""
        env = {**BASE_ENV, "SUPABASE_SERVICE_ROLE_KEY": "", "JWT_SECRET": "   "}
        with patch.dict("os.environ", env, clear=True):
            with pytest.raises(ValidationError) as exc_info:
                Settings(_env_file=None)

            error_str = str(exc_info.value)
            assert "SUPABASE_SERVICE_ROLE_KEY" in error_str
            assert "JWT_SECRET" in error_str

    def test_all_secrets_present_succeeds(self):
        with patch.dict("os.environ", BASE_ENV, clear=True):
            settings = Settings(_env_file=None)
            assert settings.supabase_url == "https://test.supabase.co"
            assert settings.jwt_algorithm == "HS256"


class TestReviewLifecycleSettings:
    """Defaults and overrides for publishing, edit windows and retention."""

    def test_defaults(self):
        with patch.dict("os.environ", BASE_ENV, clear=True):
            settings = Settings(_env_file=None)

        assert settings.review_publish_delay_days == 14
        assert settings.review_edit_window_hours == 24
        assert settings.reply_edit_window_hours == 24
        assert settings.review_retention_months == 36
        assert settings.publisher_run_deadline_seconds == 240
        assert settings.scheduler_lock_timeout_seconds == 600

    def test_overrides_from_environment(self):
        env = {**BASE_ENV, "REVIEW_RETENTION_MONTHS": "24", "REVIEW_PUBLISH_DELAY_DAYS": "7"}
        with patch.dict("os.environ", env, clear=True):
            settings = Settings(_env_file=None)

        assert settings.review_retention_months == 24
        assert settings.review_publish_delay_days == 7


class TestCorsValidation:
    """Test CORS origin validation in production."""

    def test_cors_allows_localhost_in_development(self):
        env = {**BASE_ENV, "CORS_ORIGINS": '["http://localhost:3000"]'}
        with patch.dict("os.environ", env, clear=True):
            settings = Settings(_env_file=None)
            assert settings.cors_origins == ["http://localhost:3000"]

    def test_cors_rejects_wildcard_in_production(self):
        env = {**BASE_ENV, "ENVIRONMENT": "production", "CORS_ORIGINS": '["*"]'}
        with patch.dict("os.environ", env, clear=True):
            with pytest.raises(ValidationError) as exc_info:
                Settings(_env_file=None)

            assert "Wildcard" in str(exc_info.value)

    @pytest.mark.parametrize(
        "origin", ["http://localhost:3000", "http://127.0.0.1:8000", "http://0.0.0.0"]
    )
    def test_cors_rejects_local_hosts_in_production(self, origin):
        env = {**BASE_ENV, "ENVIRONMENT": "production", "CORS_ORIGINS": f'["{origin}"]'}
        with patch.dict("os.environ", env, clear=True):
            with pytest.raises(ValidationError) as exc_info:
                Settings(_env_file=None)

            assert "not allowed in production" in str(exc_info.value)

    def test_cors_allows_https_in_production(self):
        env = {
            **BASE_ENV,
            "ENVIRONMENT": "production",
            "CORS_ORIGINS": '["https://app.leaseplatform.example"]',
        }
        with patch.dict("os.environ", env, clear=True):
            settings = Settings(_env_file=None)
            assert settings.environment == "production"
