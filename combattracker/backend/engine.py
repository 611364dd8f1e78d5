"""Reducer that applies host actions to encounter snapshots."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from .encounter import CombatEncounter
from .errors import InvalidValue
from .models import TurnInfo
from .state import (
    REQUIRED_COMBATANT_KEYS,
    combatant_fields_from_state,
    combatant_to_state,
    encounter_from_state,
    encounter_to_state,
)

logger = logging.getLogger(__name__)

ACTION_TYPES: tuple[str, ...] = (
    "START",
    "PAUSE",
    "RESUME",
    "END",
    "ADD_COMBATANT",
    "ADD_COMBATANT_FROM_CHARACTER",
    "UPDATE_COMBATANT",
    "REMOVE_COMBATANT",
    "APPLY_DAMAGE",
    "APPLY_HEALING",
    "ADD_STATUS_EFFECT",
    "REMOVE_STATUS_EFFECT",
    "NEXT_TURN",
    "PREVIOUS_TURN",
    "UPDATE_DETAILS",
)


@dataclass(frozen=True)
class ActionResult:
    state: dict[str, Any]
    engine_events: list[dict[str, Any]]
    applied: bool = True
    result: dict[str, Any] = field(default_factory=dict)


def apply_host_action(state: dict[str, Any], action: dict[str, Any]) -> ActionResult:
    """Apply one host action to a snapshot and return the next snapshot.

    The input state is never mutated. Lifecycle violations raise
    ``InvalidTransition``; references to missing combatants or effects come
    back with ``applied=False``.
    """
    action_type = str(action.get("type", "")).upper()
    encounter = CombatEncounter(encounter_from_state(state))

    if action_type == "START":
        return _apply_start(encounter, state, action)
    if action_type == "PAUSE":
        encounter.pause()
        return _result(encounter, state, [{"kind": "encounter_paused", "action": action}])
    if action_type == "RESUME":
        encounter.resume()
        return _result(encounter, state, [{"kind": "encounter_resumed", "action": action}])
    if action_type == "END":
        return _apply_end(encounter, state, action)
    if action_type == "ADD_COMBATANT":
        return _apply_add_combatant(encounter, state, action)
    if action_type == "ADD_COMBATANT_FROM_CHARACTER":
        return _apply_add_combatant_from_character(encounter, state, action)
    if action_type == "UPDATE_COMBATANT":
        return _apply_update_combatant(encounter, state, action)
    if action_type == "REMOVE_COMBATANT":
        return _apply_remove_combatant(encounter, state, action)
    if action_type == "APPLY_DAMAGE":
        return _apply_hp_change(encounter, state, action, kind="damage_applied")
    if action_type == "APPLY_HEALING":
        return _apply_hp_change(encounter, state, action, kind="healing_applied")
    if action_type == "ADD_STATUS_EFFECT":
        return _apply_add_effect(encounter, state, action)
    if action_type == "REMOVE_STATUS_EFFECT":
        return _apply_remove_effect(encounter, state, action)
    if action_type == "NEXT_TURN":
        return _apply_next_turn(encounter, state, action)
    if action_type == "PREVIOUS_TURN":
        return _apply_previous_turn(encounter, state, action)
    if action_type == "UPDATE_DETAILS":
        return _apply_update_details(encounter, state, action)
    logger.warning("Ignoring unknown host action %r", action_type)
    return ActionResult(state=dict(state), engine_events=[], applied=False, result={"unknownAction": action_type})


def _result(
    encounter: CombatEncounter,
    base: dict[str, Any],
    events: list[dict[str, Any]],
    result: dict[str, Any] | None = None,
) -> ActionResult:
    return ActionResult(
        state=encounter_to_state(encounter.record, base=base),
        engine_events=events,
        result=result or {},
    )


def _not_found(base: dict[str, Any], what: str, identifier: str) -> ActionResult:
    return ActionResult(state=dict(base), engine_events=[], applied=False, result={"notFound": what, "id": identifier})


def _require_id(action: dict[str, Any], key: str) -> str:
    value = action.get(key)
    if not isinstance(value, str) or value == "":
        raise InvalidValue(f"Action field {key!r} must be a non-empty string")
    return value


def _require_mapping(action: dict[str, Any], key: str) -> dict[str, Any]:
    value = action.get(key)
    if not isinstance(value, dict):
        raise InvalidValue(f"Action field {key!r} must be an object")
    return value


def _turn_payload(info: TurnInfo) -> dict[str, Any]:
    current = info.current_combatant
    return {
        "round": info.round,
        "turn": info.turn,
        "currentCombatant": combatant_to_state(current) if current is not None else None,
    }


def _apply_start(encounter: CombatEncounter, state: dict[str, Any], action: dict[str, Any]) -> ActionResult:
    encounter.start()
    current = encounter.get_current_combatant()
    events = [
        {"kind": "encounter_started", "action": action},
        {"kind": "timing", "timing": "round_start", "round": encounter.current_round},
        {"kind": "timing", "timing": "turn_start", "actorId": current.id if current else None},
    ]
    return _result(encounter, state, events)


def _apply_end(encounter: CombatEncounter, state: dict[str, Any], action: dict[str, Any]) -> ActionResult:
    if not encounter.end():
        return ActionResult(state=dict(state), engine_events=[], applied=False, result={"changed": False})
    return _result(encounter, state, [{"kind": "encounter_ended", "action": action}], result={"changed": True})


def _apply_add_combatant(encounter: CombatEncounter, state: dict[str, Any], action: dict[str, Any]) -> ActionResult:
    fields = combatant_fields_from_state(_require_mapping(action, "combatant"), required=REQUIRED_COMBATANT_KEYS)
    combatant_id = encounter.add_combatant(**fields)
    return _result(
        encounter,
        state,
        [{"kind": "combatant_added", "combatantId": combatant_id, "action": action}],
        result={"combatantId": combatant_id},
    )


def _apply_add_combatant_from_character(
    encounter: CombatEncounter, state: dict[str, Any], action: dict[str, Any]
) -> ActionResult:
    character = _require_mapping(action, "character")
    initiative = action.get("initiative")
    combatant_id = encounter.add_combatant_from_character(
        character,
        initiative,  # type: ignore[arg-type]
        hp=action.get("hp"),
        max_hp=action.get("maxHp"),
        ac=action.get("ac"),
    )
    return _result(
        encounter,
        state,
        [{"kind": "combatant_added", "combatantId": combatant_id, "characterId": character.get("id"), "action": action}],
        result={"combatantId": combatant_id},
    )


def _apply_update_combatant(encounter: CombatEncounter, state: dict[str, Any], action: dict[str, Any]) -> ActionResult:
    combatant_id = _require_id(action, "combatantId")
    patch = combatant_fields_from_state(_require_mapping(action, "patch"))
    if not encounter.update_combatant(combatant_id, patch):
        return _not_found(state, "combatant", combatant_id)
    return _result(encounter, state, [{"kind": "combatant_updated", "combatantId": combatant_id, "action": action}])


def _apply_remove_combatant(encounter: CombatEncounter, state: dict[str, Any], action: dict[str, Any]) -> ActionResult:
    combatant_id = _require_id(action, "combatantId")
    if not encounter.remove_combatant(combatant_id):
        return _not_found(state, "combatant", combatant_id)
    return _result(encounter, state, [{"kind": "combatant_removed", "combatantId": combatant_id, "action": action}])


def _apply_hp_change(
    encounter: CombatEncounter, state: dict[str, Any], action: dict[str, Any], kind: str
) -> ActionResult:
    combatant_id = _require_id(action, "combatantId")
    amount = action.get("amount")
    combatant = encounter.get_combatant(combatant_id)
    if combatant is None:
        return _not_found(state, "combatant", combatant_id)
    if kind == "damage_applied":
        encounter.apply_damage(combatant_id, amount)  # type: ignore[arg-type]
    else:
        encounter.apply_healing(combatant_id, amount)  # type: ignore[arg-type]

    events = [{"kind": kind, "combatantId": combatant_id, "amount": amount, "hp": combatant.hp, "action": action}]
    if combatant.is_down:
        events.append({"kind": "combatant_down", "combatantId": combatant_id})
    return _result(encounter, state, events, result={"hp": combatant.hp})


def _apply_add_effect(encounter: CombatEncounter, state: dict[str, Any], action: dict[str, Any]) -> ActionResult:
    combatant_id = _require_id(action, "combatantId")
    effect = _require_mapping(action, "effect")
    name = effect.get("name")
    if not isinstance(name, str) or not name.strip():
        raise InvalidValue("Status effect name must be a non-empty string")
    effect_id = encounter.add_status_effect(
        combatant_id,
        name=name,
        description=effect.get("description", ""),
        duration=effect.get("duration", -1),
        type=effect.get("type", "neutral"),
    )
    if effect_id is None:
        return _not_found(state, "combatant", combatant_id)
    return _result(
        encounter,
        state,
        [{"kind": "effect_added", "combatantId": combatant_id, "effectId": effect_id, "action": action}],
        result={"effectId": effect_id},
    )


def _apply_remove_effect(encounter: CombatEncounter, state: dict[str, Any], action: dict[str, Any]) -> ActionResult:
    combatant_id = _require_id(action, "combatantId")
    effect_id = _require_id(action, "effectId")
    if not encounter.remove_status_effect(combatant_id, effect_id):
        return _not_found(state, "statusEffect", effect_id)
    return _result(
        encounter,
        state,
        [{"kind": "effect_removed", "combatantId": combatant_id, "effectId": effect_id, "action": action}],
    )


def _apply_next_turn(encounter: CombatEncounter, state: dict[str, Any], action: dict[str, Any]) -> ActionResult:
    previous = encounter.get_current_combatant()
    info = encounter.next_turn()
    if info.current_combatant is None:
        return _result(encounter, state, [], result=_turn_payload(info))

    events: list[dict[str, Any]] = [
        {"kind": "timing", "timing": "turn_end", "actorId": previous.id if previous else None, "action": action}
    ]
    if info.round_advanced:
        events.append({"kind": "timing", "timing": "round_end", "round": info.round - 1})
        for combatant_id, effect in info.expired_effects:
            events.append(
                {"kind": "effect_expired", "combatantId": combatant_id, "effectId": effect.id, "name": effect.name}
            )
        events.append({"kind": "timing", "timing": "round_start", "round": info.round})
    events.append({"kind": "timing", "timing": "turn_start", "actorId": info.current_combatant.id})
    return _result(encounter, state, events, result=_turn_payload(info))


def _apply_previous_turn(encounter: CombatEncounter, state: dict[str, Any], action: dict[str, Any]) -> ActionResult:
    info = encounter.previous_turn()
    events: list[dict[str, Any]] = []
    if info.current_combatant is not None:
        events.append(
            {"kind": "turn_rewound", "actorId": info.current_combatant.id, "round": info.round, "action": action}
        )
    return _result(encounter, state, events, result=_turn_payload(info))


def _apply_update_details(encounter: CombatEncounter, state: dict[str, Any], action: dict[str, Any]) -> ActionResult:
    details = _require_mapping(action, "details")
    unknown = set(details) - {"name", "description", "notes", "environmentEffects"}
    if unknown:
        raise InvalidValue(f"Unknown encounter detail(s): {', '.join(sorted(unknown))}")
    environment_effects = details.get("environmentEffects")
    if environment_effects is not None and not isinstance(environment_effects, list):
        raise InvalidValue("environmentEffects must be a list")
    encounter.update_details(
        name=details.get("name"),
        description=details.get("description"),
        notes=details.get("notes"),
        environment_effects=environment_effects,
    )
    return _result(encounter, state, [{"kind": "details_updated", "action": action}])
