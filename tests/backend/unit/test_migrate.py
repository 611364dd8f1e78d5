import pytest

from combattracker.backend import migrate


def test_schema_file_ships_with_package() -> None:
    schema = migrate.SCHEMA_PATH.read_text(encoding="utf-8")

    assert "CREATE TABLE IF NOT EXISTS encounters" in schema
    assert "CREATE TABLE IF NOT EXISTS encounter_snapshots" in schema


def test_migrate_requires_database_url(monkeypatch) -> None:
    monkeypatch.delenv("COMBATTRACKER_DATABASE_URL", raising=False)
    monkeypatch.setattr(migrate, "setup_logging", lambda level: None)

    with pytest.raises(RuntimeError):
        migrate.main()
