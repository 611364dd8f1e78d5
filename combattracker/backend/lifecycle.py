"""Encounter status machine: preparing -> active <-> paused -> completed."""

from __future__ import annotations

import logging
from datetime import datetime

from .errors import InvalidTransition
from .models import Encounter
from .scheduler import resort

logger = logging.getLogger(__name__)

TERMINAL_STATUS = "completed"


def require_active(encounter: Encounter, operation: str) -> None:
    if encounter.status != "active":
        raise InvalidTransition(operation, encounter.status)


def require_editable(encounter: Encounter, operation: str) -> None:
    """Roster and effect edits are allowed in every status except ``completed``."""
    if encounter.status == TERMINAL_STATUS:
        raise InvalidTransition(operation, encounter.status)


def start(encounter: Encounter, now: datetime) -> None:
    if encounter.status != "preparing":
        raise InvalidTransition("start", encounter.status)
    if not encounter.combatants:
        raise InvalidTransition("start", encounter.status, "no combatants")
    encounter.status = "active"
    encounter.current_round = 1
    encounter.current_turn = 0
    encounter.started_at = now
    resort(encounter)
    logger.info("Encounter %s started with %d combatant(s)", encounter.id, len(encounter.combatants))


def pause(encounter: Encounter) -> None:
    require_active(encounter, "pause")
    encounter.status = "paused"
    logger.info("Encounter %s paused", encounter.id)


def resume(encounter: Encounter) -> None:
    if encounter.status != "paused":
        raise InvalidTransition("resume", encounter.status)
    encounter.status = "active"
    logger.info("Encounter %s resumed", encounter.id)


def end(encounter: Encounter, now: datetime) -> bool:
    """Complete the encounter. Returns False when it was already completed."""
    if encounter.status == TERMINAL_STATUS:
        return False
    encounter.status = TERMINAL_STATUS
    encounter.ended_at = now
    logger.info("Encounter %s completed after %d round(s)", encounter.id, encounter.current_round)
    return True
