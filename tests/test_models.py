"""Tests for dm_table.models."""

import asyncio

from dm_table.models import (
    CharacterSheet,
    CombatState,
    ConversationContext,
    InitiativeEntry,
    ended_snapshot,
)


class TestCharacterSheet:
    def test_wire_aliases(self) -> None:
        sheet = CharacterSheet.model_validate({"class": "Bardo", "maxHp": 20, "passivePerception": 12})
        assert sheet.clazz == "Bardo"
        assert sheet.max_hp == 20
        assert sheet.passive_perception == 12

    def test_field_names_also_accepted(self) -> None:
        assert CharacterSheet(clazz="Bardo").clazz == "Bardo"

    def test_unknown_fields_kept(self) -> None:
        sheet = CharacterSheet.model_validate({"name": "Ana", "inventory": ["cuerda"]})
        assert sheet.model_dump(by_alias=True)["inventory"] == ["cuerda"]

    def test_senses_passive_perception_lifted(self) -> None:
        sheet = CharacterSheet.model_validate({"senses": {"passivePerception": 15}})
        assert sheet.passive_perception == 15

    def test_top_level_passive_perception_wins(self) -> None:
        sheet = CharacterSheet.model_validate(
            {"passivePerception": 11, "senses": {"passivePerception": 15}}
        )
        assert sheet.passive_perception == 11


class TestConversationContext:
    def test_defaults(self) -> None:
        ctx = ConversationContext(persona_prompt="p")
        assert ctx.history == []
        assert ctx.last_request_at is None
        assert ctx.mode == "ai"


class TestCombatState:
    def _state(self) -> CombatState:
        return CombatState(
            room_id="r1",
            initiative=[InitiativeEntry(id="a", name="Ana", score=15)],
            turn_ends_at=1600.0,
        )

    def test_current(self) -> None:
        assert self._state().current.name == "Ana"

    def test_snapshot_has_server_now_and_no_timer(self) -> None:
        snap = self._state().snapshot(1000.0)
        assert snap["server_now"] == 1000.0
        assert snap["turn_ends_at"] == 1600.0
        assert snap["initiative"] == [{"id": "a", "name": "Ana", "score": 15}]
        assert "timer" not in snap

    async def test_cancel_timer(self) -> None:
        state = self._state()
        state.timer = asyncio.get_running_loop().call_later(60, lambda: None)
        handle = state.timer
        state.cancel_timer()
        assert handle.cancelled()
        assert state.timer is None

    def test_ended_snapshot(self) -> None:
        snap = ended_snapshot("r1", 5.0)
        assert snap == {
            "room_id": "r1",
            "initiative": [],
            "round": 1,
            "turn_index": 0,
            "running": False,
            "server_now": 5.0,
        }
