import pytest
from pydantic import ValidationError

from recordstore.config import Settings, get_settings, reset_settings_cache


def test_from_env_reads_declared_variables(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://app@db:5432/records")
    monkeypatch.setenv("USE_MEMORY_STORE", "false")
    monkeypatch.setenv("DB_POOL_MIN_SIZE", "2")
    monkeypatch.setenv("DB_POOL_MAX_SIZE", "4")

    settings = Settings.from_env()

    assert settings.database_url == "postgresql://app@db:5432/records"
    assert settings.use_memory_store is False
    assert settings.pool_min_size == 2
    assert settings.pool_max_size == 4


def test_dotenv_file_is_a_fallback(monkeypatch, tmp_path):
    (tmp_path / ".env").write_text("DATABASE_URL=postgresql://from-dotenv/records\n")
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("DATABASE_URL", raising=False)

    assert Settings.from_env().database_url == "postgresql://from-dotenv/records"


def test_environment_wins_over_dotenv(monkeypatch, tmp_path):
    (tmp_path / ".env").write_text("DATABASE_URL=postgresql://from-dotenv/records\n")
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DATABASE_URL", "postgresql://from-env/records")

    assert Settings.from_env().database_url == "postgresql://from-env/records"


def test_pool_bounds_are_validated():
    with pytest.raises(ValidationError):
        Settings(pool_min_size=0)
    with pytest.raises(ValidationError):
        Settings(pool_min_size=5, pool_max_size=2)


def test_blank_database_url_rejected():
    with pytest.raises(ValidationError):
        Settings(database_url="  ")


def test_settings_are_cached_until_reset(monkeypatch):
    reset_settings_cache()
    monkeypatch.setenv("DB_POOL_MAX_SIZE", "7")
    first = get_settings()
    monkeypatch.setenv("DB_POOL_MAX_SIZE", "8")
    assert get_settings() is first

    reset_settings_cache()
    assert get_settings().pool_max_size == 8
    reset_settings_cache()
