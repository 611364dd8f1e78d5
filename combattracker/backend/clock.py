"""Status effect clock: timed tags on combatants and the round-rollover sweep."""

from __future__ import annotations

import logging
import uuid
from typing import Iterable

from .errors import InvalidValue
from .models import EFFECT_TYPES, PERMANENT, Combatant, StatusEffect

logger = logging.getLogger(__name__)

PREDEFINED_STATUS_EFFECTS: tuple[dict[str, str], ...] = (
    {"name": "Blessed", "description": "+1d4 to attack rolls and saves", "type": "buff"},
    {"name": "Poisoned", "description": "Disadvantage on attack rolls and ability checks", "type": "debuff"},
    {"name": "Paralyzed", "description": "Cannot move or act", "type": "debuff"},
    {"name": "Stunned", "description": "Cannot move or act, fails Str/Dex saves", "type": "debuff"},
    {
        "name": "Charmed",
        "description": "Cannot attack charmer, charmer has advantage on social interactions",
        "type": "debuff",
    },
    {
        "name": "Frightened",
        "description": "Disadvantage on ability checks and attacks while source is in sight",
        "type": "debuff",
    },
    {"name": "Blinded", "description": "Cannot see, auto-fail sight checks, disadvantage on attacks", "type": "debuff"},
    {"name": "Deafened", "description": "Cannot hear, auto-fail hearing checks", "type": "debuff"},
    {"name": "Prone", "description": "Can only crawl, disadvantage on melee attacks", "type": "debuff"},
    {"name": "Restrained", "description": "Speed 0, disadvantage on attacks and Dex saves", "type": "debuff"},
    {"name": "Haste", "description": "Double speed, extra action, +2 AC", "type": "buff"},
    {"name": "Slow", "description": "Half speed, -2 AC, limited actions", "type": "debuff"},
    {"name": "Invisible", "description": "Cannot be seen, advantage on attacks", "type": "buff"},
    {"name": "Concentration", "description": "Maintaining a spell", "type": "neutral"},
)


def validate_effect_fields(duration: int, effect_type: str) -> None:
    if isinstance(duration, bool) or not isinstance(duration, int):
        raise InvalidValue(f"Effect duration must be an integer, got {duration!r}")
    if duration != PERMANENT and duration <= 0:
        raise InvalidValue(f"Effect duration must be -1 (permanent) or a positive round count, got {duration}")
    if effect_type not in EFFECT_TYPES:
        raise InvalidValue(f"Unknown effect type {effect_type!r}; expected one of {', '.join(EFFECT_TYPES)}")


def add_status_effect(
    combatant: Combatant,
    name: str,
    description: str = "",
    duration: int = PERMANENT,
    type: str = "neutral",
) -> StatusEffect:
    """Append a new effect to the combatant and return it."""
    validate_effect_fields(duration, type)
    effect = StatusEffect(
        id=str(uuid.uuid4()),
        name=name,
        description=description,
        duration=duration,
        type=type,  # type: ignore[arg-type]
    )
    combatant.status_effects.append(effect)
    return effect


def remove_status_effect(combatant: Combatant, effect_id: str) -> bool:
    remaining = [effect for effect in combatant.status_effects if effect.id != effect_id]
    if len(remaining) == len(combatant.status_effects):
        return False
    combatant.status_effects = remaining
    return True


def round_rollover_sweep(combatants: Iterable[Combatant]) -> list[tuple[str, StatusEffect]]:
    """Tick every timed effect down by one round and drop the ones that ran out.

    Permanent effects are left alone. Returns ``(combatant_id, effect)`` for
    each effect removed by this sweep.
    """
    expired: list[tuple[str, StatusEffect]] = []
    for combatant in combatants:
        kept: list[StatusEffect] = []
        for effect in combatant.status_effects:
            if effect.duration > 0:
                effect.duration -= 1
                if effect.duration == 0:
                    expired.append((combatant.id, effect))
                    continue
            kept.append(effect)
        combatant.status_effects = kept
    if expired:
        logger.debug("Round sweep expired %d status effect(s)", len(expired))
    return expired
