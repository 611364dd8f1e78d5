"""Persistence interfaces and implementations for encounter data."""

from __future__ import annotations

from datetime import datetime, timezone
import json
import logging
import threading
from typing import Any, Protocol
import uuid

from combattracker.backend.engine import ActionResult, apply_host_action
from combattracker.backend.errors import ConcurrentModification
from combattracker.backend.models import EncounterRecord
from combattracker.backend.state import build_initial_state

logger = logging.getLogger(__name__)


class EncounterStore(Protocol):
    def create_encounter(
        self,
        campaign_id: str,
        name: str,
        description: str = "",
        notes: str = "",
        environment_effects: list[str] | None = None,
    ) -> EncounterRecord:
        """Create encounter and persist its initial snapshot."""

    def get_encounter_state(self, encounter_id: str) -> EncounterRecord | None:
        """Return the latest snapshot of an encounter."""

    def list_encounters(self, campaign_id: str, status: str | None = None) -> list[EncounterRecord]:
        """Return the latest snapshots of a campaign's encounters, oldest first."""

    def apply_action(self, encounter_id: str, action: dict[str, Any]) -> ActionResult | None:
        """Apply a host action and persist the next snapshot; None if the encounter is unknown."""

    def delete_encounter(self, encounter_id: str) -> bool:
        """Discard an encounter with all of its snapshots."""


def reduce_snapshot(state: dict[str, Any], action: dict[str, Any]) -> ActionResult:
    """Run the reducer and stamp the next version, log and update time on the result."""
    reduced = apply_host_action(state=state, action=action)
    if not reduced.applied:
        return reduced

    next_state = dict(reduced.state)
    next_state["version"] = int(state["version"]) + 1
    next_meta = dict(next_state["meta"])
    next_meta["updatedAt"] = datetime.now(timezone.utc).isoformat()
    next_state["meta"] = next_meta

    next_log = list(state.get("log", []))
    next_log.append({"kind": "action", "role": "HOST", "action": action})
    next_log.extend(reduced.engine_events)
    next_state["log"] = next_log

    return ActionResult(
        state=next_state,
        engine_events=reduced.engine_events,
        applied=True,
        result=reduced.result,
    )


class InMemoryEncounterStore:
    def __init__(self) -> None:
        self._encounters: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def create_encounter(
        self,
        campaign_id: str,
        name: str,
        description: str = "",
        notes: str = "",
        environment_effects: list[str] | None = None,
    ) -> EncounterRecord:
        encounter_id = str(uuid.uuid4())
        state = build_initial_state(
            encounter_id=encounter_id,
            campaign_id=campaign_id,
            name=name,
            description=description,
            notes=notes,
            environment_effects=environment_effects,
        )
        with self._lock:
            self._encounters[encounter_id] = state
        logger.info("Created encounter %s for campaign %s", encounter_id, campaign_id)
        return EncounterRecord(encounter_id=encounter_id, state=state)

    def get_encounter_state(self, encounter_id: str) -> EncounterRecord | None:
        state = self._encounters.get(encounter_id)
        if state is None:
            return None
        return EncounterRecord(encounter_id=encounter_id, state=state)

    def list_encounters(self, campaign_id: str, status: str | None = None) -> list[EncounterRecord]:
        return [
            EncounterRecord(encounter_id=encounter_id, state=state)
            for encounter_id, state in list(self._encounters.items())
            if state["campaignId"] == campaign_id and (status is None or state["status"] == status)
        ]

    def apply_action(self, encounter_id: str, action: dict[str, Any]) -> ActionResult | None:
        with self._lock:
            state = self._encounters.get(encounter_id)
            if state is None:
                return None
            reduced = reduce_snapshot(state=state, action=action)
            if reduced.applied:
                self._encounters[encounter_id] = reduced.state
            return reduced

    def delete_encounter(self, encounter_id: str) -> bool:
        with self._lock:
            removed = self._encounters.pop(encounter_id, None) is not None
        if removed:
            logger.info("Deleted encounter %s", encounter_id)
        return removed


class PostgresEncounterStore:
    def __init__(self, database_url: str) -> None:
        self.database_url = database_url

    def _connect(self) -> Any:
        import psycopg

        return psycopg.connect(self.database_url)

    def create_encounter(
        self,
        campaign_id: str,
        name: str,
        description: str = "",
        notes: str = "",
        environment_effects: list[str] | None = None,
    ) -> EncounterRecord:
        encounter_id = str(uuid.uuid4())
        state = build_initial_state(
            encounter_id=encounter_id,
            campaign_id=campaign_id,
            name=name,
            description=description,
            notes=notes,
            environment_effects=environment_effects,
        )
        now = datetime.now(timezone.utc)

        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO encounters (id, campaign_id, name, status, current_version, created_at, updated_at)
                    VALUES (%s, %s, %s, %s, %s, %s, %s)
                    """,
                    (encounter_id, campaign_id, name, state["status"], state["version"], now, now),
                )
                cur.execute(
                    """
                    INSERT INTO encounter_snapshots (id, encounter_id, version, created_at, state_json)
                    VALUES (%s, %s, %s, %s, %s::jsonb)
                    """,
                    (str(uuid.uuid4()), encounter_id, state["version"], now, json.dumps(state)),
                )
            conn.commit()

        logger.info("Created encounter %s for campaign %s", encounter_id, campaign_id)
        return EncounterRecord(encounter_id=encounter_id, state=state)

    def get_encounter_state(self, encounter_id: str) -> EncounterRecord | None:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT s.state_json
                    FROM encounters e
                    JOIN encounter_snapshots s
                      ON s.encounter_id = e.id AND s.version = e.current_version
                    WHERE e.id = %s
                    """,
                    (encounter_id,),
                )
                row = cur.fetchone()

        if row is None:
            return None
        return EncounterRecord(encounter_id=encounter_id, state=_decode_state(row[0]))

    def list_encounters(self, campaign_id: str, status: str | None = None) -> list[EncounterRecord]:
        sql = """
            SELECT e.id, s.state_json
            FROM encounters e
            JOIN encounter_snapshots s
              ON s.encounter_id = e.id AND s.version = e.current_version
            WHERE e.campaign_id = %s
        """
        params: tuple[Any, ...] = (campaign_id,)
        if status is not None:
            sql += " AND e.status = %s"
            params = (campaign_id, status)
        sql += " ORDER BY e.created_at"

        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                rows = cur.fetchall()

        return [EncounterRecord(encounter_id=str(row[0]), state=_decode_state(row[1])) for row in rows]

    def apply_action(self, encounter_id: str, action: dict[str, Any]) -> ActionResult | None:
        record = self.get_encounter_state(encounter_id=encounter_id)
        if record is None:
            return None

        reduced = reduce_snapshot(state=record.state, action=action)
        if not reduced.applied:
            return reduced

        expected_version = int(record.state["version"])
        next_state = reduced.state
        now = datetime.now(timezone.utc)
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE encounters
                    SET current_version = %s, status = %s, name = %s, updated_at = %s
                    WHERE id = %s AND current_version = %s
                    """,
                    (
                        next_state["version"],
                        next_state["status"],
                        next_state["meta"]["name"],
                        now,
                        encounter_id,
                        expected_version,
                    ),
                )
                if cur.rowcount == 0:
                    logger.warning("Encounter %s was modified concurrently at version %d", encounter_id, expected_version)
                    raise ConcurrentModification(encounter_id, expected_version)
                cur.execute(
                    """
                    INSERT INTO encounter_snapshots (id, encounter_id, version, created_at, state_json)
                    VALUES (%s, %s, %s, %s, %s::jsonb)
                    """,
                    (str(uuid.uuid4()), encounter_id, next_state["version"], now, json.dumps(next_state)),
                )
            conn.commit()

        return reduced

    def delete_encounter(self, encounter_id: str) -> bool:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM encounters WHERE id = %s", (encounter_id,))
                removed = cur.rowcount > 0
            conn.commit()
        if removed:
            logger.info("Deleted encounter %s", encounter_id)
        return removed


def _decode_state(state_json: Any) -> dict[str, Any]:
    return state_json if isinstance(state_json, dict) else json.loads(state_json)


def create_store(database_url: str | None) -> EncounterStore:
    if database_url:
        return PostgresEncounterStore(database_url=database_url)
    return InMemoryEncounterStore()
