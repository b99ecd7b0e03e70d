"""Room-scoped domain models.

Pydantic is used for every record that crosses the wire (snapshots, sheets,
roster entries). CombatState additionally owns its auto-advance timer handle,
which is excluded from serialisation.
"""

from __future__ import annotations

import asyncio
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from dm_table.config import DEFAULT_AUTO_DELAY_SEC, DEFAULT_TURN_SEC, NarratorMode

Role = Literal["system", "user", "assistant"]


class Member(BaseModel):
    """A connection present in a room."""

    id: str
    name: str


class ChatTurn(BaseModel):
    role: Role
    content: str


class ConversationContext(BaseModel):
    """Narrator conversation for one room.

    `history` holds user/assistant turns only; the persona prompt is kept
    apart so trimming never touches it.
    """

    persona_prompt: str
    history: list[ChatTurn] = Field(default_factory=list)
    last_request_at: float | None = None
    mode: NarratorMode = "ai"


class InitiativeEntry(BaseModel):
    id: str
    name: str
    score: int


class CombatState(BaseModel):
    """Turn order for a room. Never stored with an empty initiative list."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    room_id: str
    initiative: list[InitiativeEntry]
    round: int = 1
    turn_index: int = 0
    duration_sec: int = DEFAULT_TURN_SEC
    auto_advance: bool = True
    auto_delay_sec: int = DEFAULT_AUTO_DELAY_SEC
    running: bool = True
    turn_ends_at: float = 0.0
    timer: asyncio.TimerHandle | None = Field(default=None, exclude=True)

    @property
    def current(self) -> InitiativeEntry | None:
        if not self.initiative:
            return None
        return self.initiative[self.turn_index]

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None

    def snapshot(self, server_now: float) -> dict[str, Any]:
        return {**self.model_dump(), "server_now": server_now}


def ended_snapshot(room_id: str, server_now: float) -> dict[str, Any]:
    """Snapshot broadcast when a room has no combat."""
    return {
        "room_id": room_id,
        "initiative": [],
        "round": 1,
        "turn_index": 0,
        "running": False,
        "server_now": server_now,
    }


class CharacterSheet(BaseModel):
    """Shared character sheet. Unknown fields are kept as sent."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str | None = None
    clazz: str | None = Field(default=None, alias="class")
    level: int | None = None
    ac: int | None = None
    hp: int | None = None
    max_hp: int | None = Field(default=None, alias="maxHp")
    passive_perception: int | None = Field(default=None, alias="passivePerception")
    speed: int | None = None

    @model_validator(mode="before")
    @classmethod
    def _lift_senses(cls, data: Any) -> Any:
        # Client exports nest passive perception under "senses".
        if isinstance(data, dict) and "passivePerception" not in data:
            senses = data.get("senses")
            if isinstance(senses, dict) and "passivePerception" in senses:
                data = {**data, "passivePerception": senses["passivePerception"]}
        return data


class CharacterEntry(BaseModel):
    id: str
    name: str
    sheet: CharacterSheet


class Directive(BaseModel):
    """A control directive, either parsed from [CMD:...] or inferred from text."""

    name: str
    options: dict[str, str] = Field(default_factory=dict)
