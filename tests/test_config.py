import pytest

from config import Settings

JWT_VARS = ("JWT_ACCESS_SECRET", "JWT_REFRESH_SECRET")


@pytest.fixture
def env(monkeypatch):
    for name in ("APP_ENV",) + JWT_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_development_uses_local_secrets(env):
    settings = Settings.from_env()
    assert settings.environment == "development"
    assert settings.jwt_access_secret == "dev-access-secret"


def test_production_requires_jwt_secrets(env):
    env.setenv("APP_ENV", "production")
    with pytest.raises(ValueError, match="JWT secrets not configured"):
        Settings.from_env()

    env.setenv("JWT_ACCESS_SECRET", "real-access")
    with pytest.raises(ValueError, match="JWT secrets not configured"):
        Settings.from_env()


def test_production_with_secrets(env):
    env.setenv("APP_ENV", "production")
    env.setenv("JWT_ACCESS_SECRET", "real-access")
    env.setenv("JWT_REFRESH_SECRET", "real-refresh")
    settings = Settings.from_env()
    assert settings.is_production
    assert settings.jwt_refresh_secret == "real-refresh"


def test_production_rejects_development_defaults():
    with pytest.raises(ValueError):
        Settings(environment="production", jwt_access_secret="x", jwt_refresh_secret="dev-refresh-secret")
