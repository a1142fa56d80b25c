from pathlib import Path

import pytest

from billing_dashboard.core.config import Settings


def test_defaults_apply_when_optional_values_are_unset(settings, monkeypatch):
    monkeypatch.delenv("JWT_EXPIRATION_HOURS", raising=False)
    monkeypatch.delenv("CORS_ALLOW_ORIGINS", raising=False)

    loaded = Settings()

    assert loaded.jwt_expiration_hours == 24 * 7
    assert loaded.cors_allow_origins == ["*"]


def test_in_memory_database_path_is_kept_verbatim(settings, monkeypatch):
    monkeypatch.setenv("DATABASE_PATH", ":memory:")
    monkeypatch.setenv("CORS_ALLOW_ORIGINS", "https://app.example.com, ,https://admin.example.com")

    loaded = Settings()

    assert loaded.database_path == Path(":memory:")
    assert loaded.cors_allow_origins == ["https://app.example.com", "https://admin.example.com"]


def test_missing_stripe_secret_is_rejected(settings, monkeypatch):
    monkeypatch.setenv("STRIPE_SECRET_KEY", "")

    with pytest.raises(RuntimeError, match="STRIPE_SECRET_KEY"):
        Settings()


@pytest.mark.parametrize("value", ["soon", "0", "-3"])
def test_invalid_token_lifetime_is_rejected(settings, monkeypatch, value):
    monkeypatch.setenv("JWT_EXPIRATION_HOURS", value)

    with pytest.raises(RuntimeError, match="JWT_EXPIRATION_HOURS"):
        Settings()
