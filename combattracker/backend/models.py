"""Domain models for encounters, combatants and persistence contracts."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

EncounterStatus = Literal["preparing", "active", "paused", "completed"]
EffectType = Literal["buff", "debuff", "neutral"]

EFFECT_TYPES: tuple[str, ...] = ("buff", "debuff", "neutral")

PERMANENT = -1
DEFAULT_AC = 10


@dataclass
class StatusEffect:
    id: str
    name: str
    description: str = ""
    duration: int = PERMANENT
    type: EffectType = "neutral"

    @property
    def is_permanent(self) -> bool:
        return self.duration == PERMANENT


@dataclass
class Combatant:
    id: str
    name: str
    initiative: int
    hp: int
    max_hp: int
    ac: int = DEFAULT_AC
    is_player: bool = False
    status_effects: list[StatusEffect] = field(default_factory=list)
    character_id: str | None = None
    notes: str = ""

    @property
    def is_down(self) -> bool:
        return self.hp == 0


@dataclass
class Encounter:
    id: str
    campaign_id: str
    name: str
    description: str = ""
    notes: str = ""
    status: EncounterStatus = "preparing"
    current_round: int = 0
    current_turn: int = 0
    combatants: list[Combatant] = field(default_factory=list)
    environment_effects: list[str] = field(default_factory=list)
    started_at: datetime | None = None
    ended_at: datetime | None = None

    @property
    def initiative_order(self) -> list[str]:
        return [combatant.id for combatant in self.combatants]


@dataclass(frozen=True)
class TurnInfo:
    round: int
    turn: int
    current_combatant: Combatant | None
    round_advanced: bool = False
    expired_effects: tuple[tuple[str, StatusEffect], ...] = ()


@dataclass(frozen=True)
class EncounterSummary:
    total_combatants: int
    players: int
    enemies: int
    current_round: int
    status: str
    duration: int | None
    health_percentage: float

    def as_dict(self) -> dict[str, Any]:
        return {
            "totalCombatants": self.total_combatants,
            "players": self.players,
            "enemies": self.enemies,
            "currentRound": self.current_round,
            "status": self.status,
            "duration": self.duration,
            "healthPercentage": self.health_percentage,
        }


@dataclass(frozen=True)
class EncounterRecord:
    encounter_id: str
    state: dict[str, Any]
