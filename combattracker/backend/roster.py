"""Combatant roster: membership, patches and hit point bookkeeping."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Mapping

from .errors import InvalidValue
from .models import DEFAULT_AC, Combatant, Encounter
from .scheduler import resort

logger = logging.getLogger(__name__)

PATCHABLE_FIELDS = frozenset({"name", "initiative", "hp", "max_hp", "ac", "is_player", "notes", "character_id"})
_INT_FIELDS = frozenset({"initiative", "hp", "max_hp", "ac"})

PLAYER_CHARACTER_TYPE = "PC"


def _require_int(field_name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidValue(f"{field_name} must be an integer, got {value!r}")
    return value


def _require_amount(field_name: str, value: Any) -> int:
    amount = _require_int(field_name, value)
    if amount < 0:
        raise InvalidValue(f"{field_name} must not be negative, got {amount}")
    return amount


def _clamp_hp(combatant: Combatant) -> None:
    combatant.hp = max(0, min(combatant.max_hp, combatant.hp))


def _index_of(encounter: Encounter, combatant_id: str) -> int | None:
    for index, combatant in enumerate(encounter.combatants):
        if combatant.id == combatant_id:
            return index
    return None


def get_combatant(encounter: Encounter, combatant_id: str) -> Combatant | None:
    index = _index_of(encounter, combatant_id)
    if index is None:
        return None
    return encounter.combatants[index]


def add_combatant(
    encounter: Encounter,
    name: str,
    initiative: int,
    hp: int,
    max_hp: int,
    ac: int | None = None,
    is_player: bool = False,
    notes: str = "",
    character_id: str | None = None,
) -> str:
    """Add a combatant, re-sort the roster and return the new id."""
    if not isinstance(name, str) or not name.strip():
        raise InvalidValue("Combatant name must be a non-empty string")
    combatant = Combatant(
        id=str(uuid.uuid4()),
        name=name.strip(),
        initiative=_require_int("initiative", initiative),
        hp=_require_int("hp", hp),
        max_hp=_require_amount("max_hp", max_hp),
        ac=DEFAULT_AC if ac is None else _require_int("ac", ac),
        is_player=bool(is_player),
        notes=notes or "",
        character_id=character_id,
    )
    _clamp_hp(combatant)
    encounter.combatants.append(combatant)
    resort(encounter)
    logger.debug("Added combatant %s (%s) to encounter %s", combatant.id, combatant.name, encounter.id)
    return combatant.id


def update_combatant(encounter: Encounter, combatant_id: str, patch: Mapping[str, Any]) -> bool:
    """Merge ``patch`` into the combatant; returns False when it does not exist."""
    unknown = set(patch) - PATCHABLE_FIELDS
    if unknown:
        raise InvalidValue(f"Cannot patch combatant field(s): {', '.join(sorted(unknown))}")

    combatant = get_combatant(encounter, combatant_id)
    if combatant is None:
        return False

    for field_name, value in patch.items():
        if field_name in _INT_FIELDS:
            value = _require_int(field_name, value)
        if field_name == "max_hp" and value < 0:
            raise InvalidValue(f"max_hp must not be negative, got {value}")
        if field_name == "name" and (not isinstance(value, str) or not value.strip()):
            raise InvalidValue("Combatant name must be a non-empty string")

    for field_name, value in patch.items():
        setattr(combatant, field_name, value)
    _clamp_hp(combatant)

    if "initiative" in patch or "name" in patch:
        resort(encounter)
    return True


def remove_combatant(encounter: Encounter, combatant_id: str) -> bool:
    """Remove a combatant while keeping ``current_turn`` on a valid slot.

    Removing someone ahead of the current slot shifts the index down so the
    same combatant keeps acting; removing the current combatant hands the slot
    to whoever followed them.
    """
    index = _index_of(encounter, combatant_id)
    if index is None:
        return False

    encounter.combatants.pop(index)
    if index < encounter.current_turn:
        encounter.current_turn -= 1
    resort(encounter)
    logger.debug("Removed combatant %s from encounter %s", combatant_id, encounter.id)
    return True


def apply_damage(encounter: Encounter, combatant_id: str, amount: int) -> bool:
    amount = _require_amount("damage", amount)
    combatant = get_combatant(encounter, combatant_id)
    if combatant is None:
        return False
    combatant.hp = max(0, combatant.hp - amount)
    return True


def apply_healing(encounter: Encounter, combatant_id: str, amount: int) -> bool:
    amount = _require_amount("healing", amount)
    combatant = get_combatant(encounter, combatant_id)
    if combatant is None:
        return False
    combatant.hp = min(combatant.max_hp, combatant.hp + amount)
    return True


def combatant_from_character(
    character: Mapping[str, Any],
    initiative: int,
    hp: int | None = None,
    max_hp: int | None = None,
    ac: int | None = None,
) -> dict[str, Any]:
    """Build ``add_combatant`` keyword arguments from an external character record.

    Explicit ``hp``/``max_hp``/``ac`` win over whatever the record carries.
    Only copied values and the character id are kept.
    """
    record_hp = character.get("hp")
    record_max_hp = character.get("maxHp", character.get("max_hp", record_hp))
    resolved_max_hp = max_hp if max_hp is not None else record_max_hp
    resolved_hp = hp if hp is not None else (record_hp if record_hp is not None else resolved_max_hp)
    if resolved_hp is None or resolved_max_hp is None:
        raise InvalidValue(f"Character {character.get('id')!r} has no hit points; pass hp and max_hp explicitly")

    return {
        "name": character.get("name", ""),
        "initiative": initiative,
        "hp": resolved_hp,
        "max_hp": resolved_max_hp,
        "ac": ac if ac is not None else character.get("ac"),
        "is_player": character.get("type") == PLAYER_CHARACTER_TYPE,
        "character_id": character.get("id"),
    }
