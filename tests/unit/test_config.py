import pytest

from supportdesk.config.settings import Settings, get_settings


@pytest.mark.unit
class TestSettings:
    def test_default_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("USE_DATABASE", raising=False)
        settings = Settings()
        assert settings.debug is False
        assert settings.log_level == "INFO"
        assert settings.use_database is False
        assert settings.redis_url is None
        assert settings.cache_ttl_seconds == 300
        assert settings.cache_versioned_keys is False
        assert settings.jwt_algorithm == "HS256"
        assert "postgresql" in settings.database_url

    def test_settings_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://user:pass@db:5432/mydb")
        monkeypatch.setenv("REDIS_URL", "redis://cache:6379/0")
        monkeypatch.setenv("CACHE_TTL_SECONDS", "60")
        monkeypatch.setenv("CACHE_VERSIONED_KEYS", "true")
        monkeypatch.setenv("DEBUG", "true")
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        settings = Settings()
        assert settings.debug is True
        assert settings.log_level == "DEBUG"
        assert settings.redis_url == "redis://cache:6379/0"
        assert settings.cache_ttl_seconds == 60
        assert settings.cache_versioned_keys is True

    def test_insecure_jwt_secret_warns(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("JWT_SECRET", raising=False)
        get_settings.cache_clear()
        with pytest.warns(UserWarning, match="JWT_SECRET"):
            get_settings()

    def test_non_positive_ttl_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CACHE_TTL_SECONDS", "0")
        get_settings.cache_clear()
        with pytest.raises(ValueError, match="CACHE_TTL_SECONDS"):
            get_settings()

    def test_get_settings_is_cached(self) -> None:
        assert get_settings() is get_settings()
