from combattracker.backend.config import load_settings


def test_load_settings_reads_expected_env(monkeypatch) -> None:
    monkeypatch.setenv("COMBATTRACKER_DATABASE_URL", "postgresql://local")
    monkeypatch.setenv("COMBATTRACKER_HOST", "0.0.0.0")
    monkeypatch.setenv("COMBATTRACKER_PORT", "9000")
    monkeypatch.setenv("COMBATTRACKER_LOG_LEVEL", "debug")

    settings = load_settings()

    assert settings.database_url == "postgresql://local"
    assert settings.host == "0.0.0.0"
    assert settings.port == 9000
    assert settings.log_level == "DEBUG"


def test_load_settings_applies_defaults(monkeypatch) -> None:
    monkeypatch.delenv("COMBATTRACKER_DATABASE_URL", raising=False)
    monkeypatch.delenv("COMBATTRACKER_HOST", raising=False)
    monkeypatch.delenv("COMBATTRACKER_PORT", raising=False)
    monkeypatch.delenv("COMBATTRACKER_LOG_LEVEL", raising=False)

    settings = load_settings()

    assert settings.database_url is None
    assert settings.host == "127.0.0.1"
    assert settings.port == 8000
    assert settings.log_level == "INFO"
