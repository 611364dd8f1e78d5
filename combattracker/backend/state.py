"""State builders and the snapshot codec for encounter records."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from .errors import InvalidValue
from .models import Combatant, Encounter, StatusEffect

COMBATANT_KEYS: dict[str, str] = {
    "name": "name",
    "initiative": "initiative",
    "hp": "hp",
    "maxHp": "max_hp",
    "ac": "ac",
    "isPlayer": "is_player",
    "notes": "notes",
    "characterId": "character_id",
}

REQUIRED_COMBATANT_KEYS: tuple[str, ...] = ("name", "initiative", "hp", "maxHp")


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _from_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def build_initial_state(
    encounter_id: str,
    campaign_id: str,
    name: str,
    description: str = "",
    notes: str = "",
    environment_effects: Iterable[str] | None = None,
) -> dict[str, Any]:
    """Return the snapshot of a freshly created encounter."""
    now = _utc_now_iso()
    return {
        "id": encounter_id,
        "campaignId": campaign_id,
        "version": 1,
        "status": "preparing",
        "currentRound": 0,
        "currentTurn": 0,
        "initiativeOrder": [],
        "combatants": [],
        "environmentEffects": list(environment_effects or []),
        "startedAt": None,
        "endedAt": None,
        "log": [],
        "meta": {
            "name": name,
            "description": description,
            "notes": notes,
            "createdAt": now,
            "updatedAt": now,
        },
    }


def status_effect_to_state(effect: StatusEffect) -> dict[str, Any]:
    return {
        "id": effect.id,
        "name": effect.name,
        "description": effect.description,
        "duration": effect.duration,
        "type": effect.type,
    }


def combatant_to_state(combatant: Combatant) -> dict[str, Any]:
    return {
        "id": combatant.id,
        "name": combatant.name,
        "initiative": combatant.initiative,
        "hp": combatant.hp,
        "maxHp": combatant.max_hp,
        "ac": combatant.ac,
        "isPlayer": combatant.is_player,
        "statusEffects": [status_effect_to_state(effect) for effect in combatant.status_effects],
        "characterId": combatant.character_id,
        "notes": combatant.notes,
    }


def encounter_to_state(encounter: Encounter, base: Mapping[str, Any] | None = None) -> dict[str, Any]:
    """Encode the record, carrying version, log and timestamps over from ``base``."""
    base_meta = dict(base.get("meta", {})) if base else {}
    now = _utc_now_iso()
    return {
        "id": encounter.id,
        "campaignId": encounter.campaign_id,
        "version": int(base["version"]) if base else 1,
        "status": encounter.status,
        "currentRound": encounter.current_round,
        "currentTurn": encounter.current_turn,
        "initiativeOrder": encounter.initiative_order,
        "combatants": [combatant_to_state(combatant) for combatant in encounter.combatants],
        "environmentEffects": list(encounter.environment_effects),
        "startedAt": _to_iso(encounter.started_at),
        "endedAt": _to_iso(encounter.ended_at),
        "log": list(base.get("log", [])) if base else [],
        "meta": {
            "name": encounter.name,
            "description": encounter.description,
            "notes": encounter.notes,
            "createdAt": base_meta.get("createdAt", now),
            "updatedAt": base_meta.get("updatedAt", now),
        },
    }


def status_effect_from_state(data: Mapping[str, Any]) -> StatusEffect:
    return StatusEffect(
        id=data["id"],
        name=data["name"],
        description=data.get("description", ""),
        duration=int(data.get("duration", -1)),
        type=data.get("type", "neutral"),
    )


def combatant_from_state(data: Mapping[str, Any]) -> Combatant:
    return Combatant(
        id=data["id"],
        name=data["name"],
        initiative=int(data["initiative"]),
        hp=int(data["hp"]),
        max_hp=int(data["maxHp"]),
        ac=int(data.get("ac", 10)),
        is_player=bool(data.get("isPlayer", False)),
        status_effects=[status_effect_from_state(effect) for effect in data.get("statusEffects", [])],
        character_id=data.get("characterId"),
        notes=data.get("notes", ""),
    )


def encounter_from_state(state: Mapping[str, Any]) -> Encounter:
    meta = state.get("meta", {})
    return Encounter(
        id=state["id"],
        campaign_id=state["campaignId"],
        name=meta.get("name", ""),
        description=meta.get("description", ""),
        notes=meta.get("notes", ""),
        status=state.get("status", "preparing"),
        current_round=int(state.get("currentRound", 0)),
        current_turn=int(state.get("currentTurn", 0)),
        combatants=[combatant_from_state(combatant) for combatant in state.get("combatants", [])],
        environment_effects=list(state.get("environmentEffects", [])),
        started_at=_from_iso(state.get("startedAt")),
        ended_at=_from_iso(state.get("endedAt")),
    )


def combatant_fields_from_state(data: Mapping[str, Any], required: Iterable[str] = ()) -> dict[str, Any]:
    """Translate camelCase combatant keys from a client payload into model field names.

    Keys listed in ``required`` must be present; unknown keys are rejected.
    """
    unknown = set(data) - set(COMBATANT_KEYS)
    if unknown:
        raise InvalidValue(f"Unknown combatant field(s): {', '.join(sorted(unknown))}")
    missing = [key for key in required if key not in data]
    if missing:
        raise InvalidValue(f"Missing combatant field(s): {', '.join(missing)}")
    return {COMBATANT_KEYS[key]: value for key, value in data.items()}
