"""Backend package for the combat encounter tracker."""

from .config import BackendSettings, load_settings
from .encounter import CombatEncounter
from .engine import ActionResult, apply_host_action
from .errors import ConcurrentModification, EncounterError, InvalidTransition, InvalidValue
from .models import Combatant, Encounter, EncounterSummary, StatusEffect, TurnInfo
from .state import build_initial_state, encounter_from_state, encounter_to_state
from .store import EncounterStore, InMemoryEncounterStore, PostgresEncounterStore, create_store

__all__ = [
    "ActionResult",
    "apply_host_action",
    "BackendSettings",
    "build_initial_state",
    "CombatEncounter",
    "Combatant",
    "ConcurrentModification",
    "create_store",
    "Encounter",
    "encounter_from_state",
    "encounter_to_state",
    "EncounterError",
    "EncounterStore",
    "EncounterSummary",
    "InMemoryEncounterStore",
    "InvalidTransition",
    "InvalidValue",
    "load_settings",
    "PostgresEncounterStore",
    "StatusEffect",
    "TurnInfo",
]
