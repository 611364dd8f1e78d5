from datetime import datetime, timezone

import pytest

from combattracker.backend.errors import InvalidValue
from combattracker.backend.models import Combatant, Encounter, StatusEffect
from combattracker.backend.state import (
    build_initial_state,
    combatant_fields_from_state,
    encounter_from_state,
    encounter_to_state,
)


def test_build_initial_state_has_expected_defaults() -> None:
    state = build_initial_state(
        encounter_id="enc-1",
        campaign_id="camp-1",
        name="Ambush",
        environment_effects=["Fog"],
    )

    assert state["id"] == "enc-1"
    assert state["campaignId"] == "camp-1"
    assert state["version"] == 1
    assert state["status"] == "preparing"
    assert state["currentRound"] == 0
    assert state["currentTurn"] == 0
    assert state["combatants"] == []
    assert state["initiativeOrder"] == []
    assert state["environmentEffects"] == ["Fog"]
    assert state["startedAt"] is None
    assert state["endedAt"] is None
    assert state["log"] == []
    assert state["meta"]["name"] == "Ambush"
    assert state["meta"]["createdAt"] == state["meta"]["updatedAt"]


def test_codec_preserves_encounter_record() -> None:
    started = datetime(2024, 5, 1, 18, 0, tzinfo=timezone.utc)
    encounter = Encounter(
        id="enc-1",
        campaign_id="camp-1",
        name="Ambush",
        description="Road to Phandalin",
        status="active",
        current_round=3,
        current_turn=1,
        combatants=[
            Combatant(
                id="c-1",
                name="Bram",
                initiative=14,
                hp=20,
                max_hp=27,
                ac=17,
                is_player=True,
                character_id="char-9",
                status_effects=[StatusEffect(id="e-1", name="Blessed", duration=2, type="buff")],
            ),
            Combatant(id="c-2", name="Goblin", initiative=9, hp=7, max_hp=7),
        ],
        environment_effects=["Rain"],
        started_at=started,
    )

    decoded = encounter_from_state(encounter_to_state(encounter))

    assert decoded == encounter


def test_encounter_to_state_carries_version_log_and_timestamps_from_base() -> None:
    base = build_initial_state(encounter_id="enc-1", campaign_id="camp-1", name="Ambush")
    base["version"] = 7
    base["log"] = [{"kind": "action", "role": "HOST", "action": {"type": "START"}}]
    encounter = encounter_from_state(base)
    encounter.name = "Ambush at dusk"

    state = encounter_to_state(encounter, base=base)

    assert state["version"] == 7
    assert state["log"] == base["log"]
    assert state["log"] is not base["log"]
    assert state["meta"]["name"] == "Ambush at dusk"
    assert state["meta"]["createdAt"] == base["meta"]["createdAt"]


def test_initiative_order_mirrors_combatant_order() -> None:
    encounter = Encounter(
        id="enc-1",
        campaign_id="camp-1",
        name="Ambush",
        combatants=[
            Combatant(id="c-2", name="Ogre", initiative=18, hp=59, max_hp=59),
            Combatant(id="c-1", name="Bram", initiative=14, hp=27, max_hp=27),
        ],
    )

    assert encounter_to_state(encounter)["initiativeOrder"] == ["c-2", "c-1"]


def test_combatant_fields_from_state_translates_keys() -> None:
    fields = combatant_fields_from_state({"name": "Bram", "maxHp": 27, "isPlayer": True, "characterId": "char-9"})

    assert fields == {"name": "Bram", "max_hp": 27, "is_player": True, "character_id": "char-9"}


def test_combatant_fields_from_state_rejects_unknown_keys() -> None:
    with pytest.raises(InvalidValue):
        combatant_fields_from_state({"name": "Bram", "id": "forged"})


def test_combatant_fields_from_state_reports_missing_required_keys() -> None:
    with pytest.raises(InvalidValue, match="hp, maxHp"):
        combatant_fields_from_state({"name": "Bram", "initiative": 14}, required=("name", "initiative", "hp", "maxHp"))
