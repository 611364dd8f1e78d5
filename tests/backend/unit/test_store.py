import json

import pytest

from combattracker.backend.errors import ConcurrentModification, InvalidTransition
from combattracker.backend.models import EncounterRecord
from combattracker.backend.state import build_initial_state
from combattracker.backend.store import InMemoryEncounterStore, PostgresEncounterStore, create_store


def test_create_store_returns_postgres_store_when_database_url_present() -> None:
    store = create_store(database_url="postgresql://local")

    assert isinstance(store, PostgresEncounterStore)


def test_create_store_returns_in_memory_store_when_database_url_missing() -> None:
    store = create_store(database_url=None)

    assert isinstance(store, InMemoryEncounterStore)


def _add_goblin() -> dict:
    return {"type": "ADD_COMBATANT", "combatant": {"name": "Goblin", "initiative": 12, "hp": 7, "maxHp": 7}}


def test_in_memory_store_versions_and_logs_applied_actions() -> None:
    store = InMemoryEncounterStore()
    created = store.create_encounter(campaign_id="camp-1", name="Ambush")

    outcome = store.apply_action(encounter_id=created.encounter_id, action=_add_goblin())
    stored = store.get_encounter_state(encounter_id=created.encounter_id)

    assert outcome is not None
    assert outcome.state["version"] == 2
    assert stored is not None
    assert stored.state == outcome.state
    assert stored.state["log"][0] == {"kind": "action", "role": "HOST", "action": _add_goblin()}
    assert stored.state["log"][1]["kind"] == "combatant_added"
    assert created.state["version"] == 1


def test_in_memory_store_does_not_persist_unapplied_actions() -> None:
    store = InMemoryEncounterStore()
    created = store.create_encounter(campaign_id="camp-1", name="Ambush")

    outcome = store.apply_action(
        encounter_id=created.encounter_id,
        action={"type": "APPLY_DAMAGE", "combatantId": "ghost", "amount": 3},
    )
    stored = store.get_encounter_state(encounter_id=created.encounter_id)

    assert outcome is not None
    assert outcome.applied is False
    assert stored is not None
    assert stored.state["version"] == 1
    assert stored.state["log"] == []


def test_in_memory_store_does_not_persist_repeated_end() -> None:
    store = InMemoryEncounterStore()
    created = store.create_encounter(campaign_id="camp-1", name="Ambush")
    store.apply_action(encounter_id=created.encounter_id, action={"type": "END"})

    outcome = store.apply_action(encounter_id=created.encounter_id, action={"type": "END"})
    stored = store.get_encounter_state(encounter_id=created.encounter_id)

    assert outcome is not None
    assert outcome.applied is False
    assert stored is not None
    assert stored.state["version"] == 2
    assert [entry["kind"] for entry in stored.state["log"]] == ["action", "encounter_ended"]


def test_in_memory_store_propagates_invalid_transition() -> None:
    store = InMemoryEncounterStore()
    created = store.create_encounter(campaign_id="camp-1", name="Ambush")

    with pytest.raises(InvalidTransition):
        store.apply_action(encounter_id=created.encounter_id, action={"type": "START"})

    stored = store.get_encounter_state(encounter_id=created.encounter_id)
    assert stored is not None
    assert stored.state["status"] == "preparing"


def test_in_memory_store_returns_none_for_unknown_encounter() -> None:
    store = InMemoryEncounterStore()

    assert store.get_encounter_state(encounter_id="missing") is None
    assert store.apply_action(encounter_id="missing", action={"type": "START"}) is None


def test_in_memory_store_lists_by_campaign_and_status() -> None:
    store = InMemoryEncounterStore()
    ambush = store.create_encounter(campaign_id="camp-1", name="Ambush")
    store.create_encounter(campaign_id="camp-1", name="Ruins")
    store.create_encounter(campaign_id="camp-2", name="Elsewhere")
    store.apply_action(encounter_id=ambush.encounter_id, action=_add_goblin())
    store.apply_action(encounter_id=ambush.encounter_id, action={"type": "START"})

    everything = store.list_encounters(campaign_id="camp-1")
    active = store.list_encounters(campaign_id="camp-1", status="active")

    assert [record.state["meta"]["name"] for record in everything] == ["Ambush", "Ruins"]
    assert [record.encounter_id for record in active] == [ambush.encounter_id]


def test_in_memory_store_delete() -> None:
    store = InMemoryEncounterStore()
    created = store.create_encounter(campaign_id="camp-1", name="Ambush")

    assert store.delete_encounter(encounter_id=created.encounter_id) is True
    assert store.delete_encounter(encounter_id=created.encounter_id) is False
    assert store.get_encounter_state(encounter_id=created.encounter_id) is None


class _FakeCursor:
    def __init__(self, rows: list[tuple] | None = None, rowcount: int = 1) -> None:
        self.commands: list[tuple[str, tuple]] = []
        self.rows = rows or []
        self.rowcount = rowcount

    def execute(self, sql: str, params: tuple) -> None:
        self.commands.append((sql, params))

    def fetchone(self) -> tuple | None:
        return self.rows[0] if self.rows else None

    def fetchall(self) -> list[tuple]:
        return list(self.rows)

    def __enter__(self) -> "_FakeCursor":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        return None


class _FakeConnection:
    def __init__(self, cursor: _FakeCursor) -> None:
        self.cursor_instance = cursor
        self.committed = False

    def cursor(self) -> _FakeCursor:
        return self.cursor_instance

    def commit(self) -> None:
        self.committed = True

    def __enter__(self) -> "_FakeConnection":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        return None


class _PostgresStoreWithFakeConnection(PostgresEncounterStore):
    def __init__(self, rows: list[tuple] | None = None, rowcount: int = 1) -> None:
        super().__init__(database_url="postgresql://local")
        self.fake_connection = _FakeConnection(_FakeCursor(rows=rows, rowcount=rowcount))

    def _connect(self) -> _FakeConnection:
        return self.fake_connection

    @property
    def commands(self) -> list[tuple[str, tuple]]:
        return self.fake_connection.cursor_instance.commands


def _stored_state() -> dict:
    return build_initial_state(encounter_id="enc-1", campaign_id="camp-1", name="Ambush")


def test_postgres_create_encounter_inserts_row_and_snapshot() -> None:
    store = _PostgresStoreWithFakeConnection()

    record = store.create_encounter(campaign_id="camp-1", name="Ambush", notes="Night")

    assert record.state["meta"]["notes"] == "Night"
    assert store.fake_connection.committed is True
    assert len(store.commands) == 2
    assert "INSERT INTO encounters" in store.commands[0][0]
    assert store.commands[0][1][1] == "camp-1"
    assert "INSERT INTO encounter_snapshots" in store.commands[1][0]
    assert json.loads(store.commands[1][1][4]) == record.state


def test_postgres_get_encounter_state_decodes_json_text() -> None:
    state = _stored_state()
    store = _PostgresStoreWithFakeConnection(rows=[(json.dumps(state),)])

    record = store.get_encounter_state(encounter_id="enc-1")

    assert record is not None
    assert record.state == state
    assert store.commands[0][1] == ("enc-1",)


def test_postgres_get_encounter_state_returns_none_when_missing() -> None:
    store = _PostgresStoreWithFakeConnection(rows=[])

    assert store.get_encounter_state(encounter_id="missing") is None


def test_postgres_list_encounters_filters_by_status() -> None:
    state = _stored_state()
    store = _PostgresStoreWithFakeConnection(rows=[("enc-1", state)])

    records = store.list_encounters(campaign_id="camp-1", status="preparing")

    assert [record.encounter_id for record in records] == ["enc-1"]
    sql, params = store.commands[0]
    assert "e.status = %s" in sql
    assert params == ("camp-1", "preparing")


def test_postgres_apply_action_updates_version_then_persists_snapshot() -> None:
    store = _PostgresStoreWithFakeConnection()
    state = _stored_state()
    store.get_encounter_state = lambda encounter_id: _record(state)

    outcome = store.apply_action(encounter_id="enc-1", action=_add_goblin())

    assert outcome is not None
    assert outcome.state["version"] == 2
    assert store.fake_connection.committed is True
    assert len(store.commands) == 2
    assert "UPDATE encounters" in store.commands[0][0]
    assert store.commands[0][1][0] == 2
    assert store.commands[0][1][-1] == 1
    assert "INSERT INTO encounter_snapshots" in store.commands[1][0]


def test_postgres_apply_action_raises_on_version_conflict() -> None:
    store = _PostgresStoreWithFakeConnection(rowcount=0)
    state = _stored_state()
    store.get_encounter_state = lambda encounter_id: _record(state)

    with pytest.raises(ConcurrentModification):
        store.apply_action(encounter_id="enc-1", action=_add_goblin())

    assert store.fake_connection.committed is False
    assert len(store.commands) == 1


def test_postgres_apply_action_skips_writes_when_not_applied() -> None:
    store = _PostgresStoreWithFakeConnection()
    state = _stored_state()
    store.get_encounter_state = lambda encounter_id: _record(state)

    outcome = store.apply_action(
        encounter_id="enc-1",
        action={"type": "REMOVE_COMBATANT", "combatantId": "ghost"},
    )

    assert outcome is not None
    assert outcome.applied is False
    assert store.commands == []
    assert store.fake_connection.committed is False


def test_postgres_apply_action_returns_none_for_unknown_encounter() -> None:
    store = _PostgresStoreWithFakeConnection()
    store.get_encounter_state = lambda encounter_id: None

    assert store.apply_action(encounter_id="missing", action={"type": "START"}) is None
    assert store.fake_connection.committed is False


def test_postgres_delete_encounter_reports_rowcount() -> None:
    store = _PostgresStoreWithFakeConnection(rowcount=1)

    assert store.delete_encounter(encounter_id="enc-1") is True
    assert store.commands[0][1] == ("enc-1",)
    assert store.fake_connection.committed is True


def _record(state: dict) -> EncounterRecord:
    return EncounterRecord(encounter_id=state["id"], state=state)
