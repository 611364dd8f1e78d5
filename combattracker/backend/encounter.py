"""The combat encounter aggregate.

``CombatEncounter`` wraps an :class:`~combattracker.backend.models.Encounter`
record and is the only entry point that mutates it. Each operation checks the
lifecycle guard, delegates to the roster, scheduler or clock module and leaves
the record in a consistent state: combatants sorted by initiative and
``current_turn`` pointing at a valid slot.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping

from . import clock, lifecycle, roster, scheduler
from .models import PERMANENT, Combatant, Encounter, EncounterSummary, TurnInfo


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CombatEncounter:
    def __init__(self, record: Encounter, now: Callable[[], datetime] = _utc_now) -> None:
        self.record = record
        self._now = now

    @classmethod
    def create(
        cls,
        campaign_id: str,
        name: str,
        description: str = "",
        notes: str = "",
        environment_effects: Iterable[str] | None = None,
        encounter_id: str | None = None,
        now: Callable[[], datetime] = _utc_now,
    ) -> "CombatEncounter":
        record = Encounter(
            id=encounter_id or str(uuid.uuid4()),
            campaign_id=campaign_id,
            name=name,
            description=description,
            notes=notes,
            environment_effects=list(environment_effects or []),
        )
        return cls(record, now=now)

    @property
    def id(self) -> str:
        return self.record.id

    @property
    def status(self) -> str:
        return self.record.status

    @property
    def current_round(self) -> int:
        return self.record.current_round

    @property
    def current_turn(self) -> int:
        return self.record.current_turn

    @property
    def combatants(self) -> list[Combatant]:
        return self.record.combatants

    @property
    def initiative_order(self) -> list[str]:
        return self.record.initiative_order

    # Lifecycle

    def start(self) -> None:
        lifecycle.start(self.record, self._now())

    def pause(self) -> None:
        lifecycle.pause(self.record)

    def resume(self) -> None:
        lifecycle.resume(self.record)

    def end(self) -> bool:
        return lifecycle.end(self.record, self._now())

    # Roster

    def add_combatant(
        self,
        name: str,
        initiative: int,
        hp: int,
        max_hp: int,
        ac: int | None = None,
        is_player: bool = False,
        notes: str = "",
        character_id: str | None = None,
    ) -> str:
        lifecycle.require_editable(self.record, "add a combatant")
        return roster.add_combatant(
            self.record,
            name=name,
            initiative=initiative,
            hp=hp,
            max_hp=max_hp,
            ac=ac,
            is_player=is_player,
            notes=notes,
            character_id=character_id,
        )

    def add_combatant_from_character(
        self,
        character: Mapping[str, Any],
        initiative: int,
        hp: int | None = None,
        max_hp: int | None = None,
        ac: int | None = None,
    ) -> str:
        data = roster.combatant_from_character(character, initiative, hp=hp, max_hp=max_hp, ac=ac)
        return self.add_combatant(**data)

    def update_combatant(self, combatant_id: str, patch: Mapping[str, Any]) -> bool:
        lifecycle.require_editable(self.record, "update a combatant")
        return roster.update_combatant(self.record, combatant_id, patch)

    def remove_combatant(self, combatant_id: str) -> bool:
        lifecycle.require_editable(self.record, "remove a combatant")
        return roster.remove_combatant(self.record, combatant_id)

    def apply_damage(self, combatant_id: str, amount: int) -> bool:
        lifecycle.require_editable(self.record, "apply damage")
        return roster.apply_damage(self.record, combatant_id, amount)

    def apply_healing(self, combatant_id: str, amount: int) -> bool:
        lifecycle.require_editable(self.record, "apply healing")
        return roster.apply_healing(self.record, combatant_id, amount)

    def get_combatant(self, combatant_id: str) -> Combatant | None:
        return roster.get_combatant(self.record, combatant_id)

    # Status effects

    def add_status_effect(
        self,
        combatant_id: str,
        name: str,
        description: str = "",
        duration: int = PERMANENT,
        type: str = "neutral",
    ) -> str | None:
        """Attach an effect to a combatant; returns its id, or None if the combatant is gone."""
        lifecycle.require_editable(self.record, "add a status effect")
        combatant = self.get_combatant(combatant_id)
        if combatant is None:
            return None
        return clock.add_status_effect(combatant, name, description=description, duration=duration, type=type).id

    def remove_status_effect(self, combatant_id: str, effect_id: str) -> bool:
        lifecycle.require_editable(self.record, "remove a status effect")
        combatant = self.get_combatant(combatant_id)
        if combatant is None:
            return False
        return clock.remove_status_effect(combatant, effect_id)

    # Turns

    def next_turn(self) -> TurnInfo:
        lifecycle.require_active(self.record, "advance the turn")
        return scheduler.next_turn(self.record)

    def previous_turn(self) -> TurnInfo:
        lifecycle.require_active(self.record, "rewind the turn")
        return scheduler.previous_turn(self.record)

    def get_current_combatant(self) -> Combatant | None:
        return scheduler.get_current_combatant(self.record)

    # Details and summary

    def update_details(
        self,
        name: str | None = None,
        description: str | None = None,
        notes: str | None = None,
        environment_effects: Iterable[str] | None = None,
    ) -> None:
        if name is not None:
            self.record.name = name
        if description is not None:
            self.record.description = description
        if notes is not None:
            self.record.notes = notes
        if environment_effects is not None:
            self.record.environment_effects = [str(effect) for effect in environment_effects]

    def get_summary(self, now: datetime | None = None) -> EncounterSummary:
        combatants = self.record.combatants
        players = sum(1 for combatant in combatants if combatant.is_player)
        total_hp = sum(combatant.hp for combatant in combatants)
        total_max_hp = sum(combatant.max_hp for combatant in combatants)

        duration: int | None = None
        if self.record.started_at is not None:
            until = self.record.ended_at or now or self._now()
            duration = int((until - self.record.started_at).total_seconds() // 60)

        return EncounterSummary(
            total_combatants=len(combatants),
            players=players,
            enemies=len(combatants) - players,
            current_round=self.record.current_round,
            status=self.record.status,
            duration=duration,
            health_percentage=round(100 * total_hp / total_max_hp, 1) if total_max_hp > 0 else 0,
        )
