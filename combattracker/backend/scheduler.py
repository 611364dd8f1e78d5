"""Initiative ordering and turn/round progression."""

from __future__ import annotations

import logging

from .clock import round_rollover_sweep
from .models import Combatant, Encounter, TurnInfo

logger = logging.getLogger(__name__)


def initiative_sort_key(combatant: Combatant) -> tuple[int, str]:
    """Highest initiative first, ties broken alphabetically by name."""
    return (-combatant.initiative, combatant.name)


def clamp_turn(encounter: Encounter) -> None:
    if not 0 <= encounter.current_turn < len(encounter.combatants):
        encounter.current_turn = 0


def resort(encounter: Encounter) -> None:
    encounter.combatants.sort(key=initiative_sort_key)
    clamp_turn(encounter)


def get_current_combatant(encounter: Encounter) -> Combatant | None:
    if not encounter.combatants or not 0 <= encounter.current_turn < len(encounter.combatants):
        return None
    return encounter.combatants[encounter.current_turn]


def next_turn(encounter: Encounter) -> TurnInfo:
    """Advance to the next combatant, rolling the round over on wraparound.

    The status effect sweep runs exactly once per round increment, never for
    individual turns.
    """
    if not encounter.combatants:
        return TurnInfo(round=encounter.current_round, turn=encounter.current_turn, current_combatant=None)

    encounter.current_turn = (encounter.current_turn + 1) % len(encounter.combatants)
    expired: list = []
    wrapped = encounter.current_turn == 0
    if wrapped:
        encounter.current_round += 1
        expired = round_rollover_sweep(encounter.combatants)
        logger.debug("Encounter %s entered round %d", encounter.id, encounter.current_round)

    return TurnInfo(
        round=encounter.current_round,
        turn=encounter.current_turn,
        current_combatant=get_current_combatant(encounter),
        round_advanced=wrapped,
        expired_effects=tuple(expired),
    )


def previous_turn(encounter: Encounter) -> TurnInfo:
    """Step back one turn. Expired effects are not restored."""
    if not encounter.combatants:
        return TurnInfo(round=encounter.current_round, turn=encounter.current_turn, current_combatant=None)

    wrapped = encounter.current_turn <= 0
    if wrapped:
        encounter.current_turn = len(encounter.combatants) - 1
        encounter.current_round = max(1, encounter.current_round - 1)
    else:
        encounter.current_turn -= 1

    return TurnInfo(
        round=encounter.current_round,
        turn=encounter.current_turn,
        current_combatant=get_current_combatant(encounter),
        round_advanced=False,
    )
