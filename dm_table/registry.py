"""In-memory, per-room stores.

Every room-scoped entity (presence, narrator context, combat, sheets, the
pending synthesis timer) is owned here and created lazily on first lookup.
Nothing is persisted; state lives for the lifetime of the process.
"""

from __future__ import annotations

import asyncio
import logging

from dm_table.config import Settings
from dm_table.models import CharacterEntry, CombatState, ConversationContext, Member
from dm_table.prompts import build_persona_prompt

logger = logging.getLogger(__name__)


class RoomRegistry:
    def __init__(self, settings: Settings, persona_prompt: str | None = None) -> None:
        self.settings = settings
        self._persona_prompt = persona_prompt
        self._members: dict[str, dict[str, Member]] = {}
        self._contexts: dict[str, ConversationContext] = {}
        self._combat: dict[str, CombatState] = {}
        self._characters: dict[str, dict[str, CharacterEntry]] = {}
        self._synthesis: dict[str, asyncio.TimerHandle] = {}

    @property
    def persona_prompt(self) -> str:
        if self._persona_prompt is None:
            self._persona_prompt = build_persona_prompt()
        return self._persona_prompt

    # ------------------------------------------------------------------
    # Presence
    # ------------------------------------------------------------------

    def add_member(self, room_id: str, member: Member) -> None:
        self._members.setdefault(room_id, {})[member.id] = member

    def remove_member(self, room_id: str, connection_id: str) -> Member | None:
        return self._members.get(room_id, {}).pop(connection_id, None)

    def present(self, room_id: str) -> list[Member]:
        """Members in join order. Does not create the room."""
        return list(self._members.get(room_id, {}).values())

    # ------------------------------------------------------------------
    # Narrator context
    # ------------------------------------------------------------------

    def context(self, room_id: str) -> ConversationContext:
        ctx = self._contexts.get(room_id)
        if ctx is None:
            ctx = ConversationContext(
                persona_prompt=self.persona_prompt,
                mode=self.settings.narrator_mode,
            )
            self._contexts[room_id] = ctx
        return ctx

    # ------------------------------------------------------------------
    # Combat
    # ------------------------------------------------------------------

    def combat(self, room_id: str) -> CombatState | None:
        return self._combat.get(room_id)

    def set_combat(self, state: CombatState) -> None:
        previous = self._combat.get(state.room_id)
        if previous is not None and previous is not state:
            previous.cancel_timer()
        self._combat[state.room_id] = state

    def drop_combat(self, room_id: str) -> CombatState | None:
        state = self._combat.pop(room_id, None)
        if state is not None:
            state.cancel_timer()
        return state

    # ------------------------------------------------------------------
    # Character sheets
    # ------------------------------------------------------------------

    def upsert_character(self, room_id: str, entry: CharacterEntry) -> None:
        self._characters.setdefault(room_id, {})[entry.id] = entry

    def remove_character(self, room_id: str, connection_id: str) -> CharacterEntry | None:
        return self._characters.get(room_id, {}).pop(connection_id, None)

    def characters(self, room_id: str) -> list[CharacterEntry]:
        return list(self._characters.get(room_id, {}).values())

    # ------------------------------------------------------------------
    # Synthesis debounce
    # ------------------------------------------------------------------

    def replace_synthesis_timer(self, room_id: str, handle: asyncio.TimerHandle) -> None:
        previous = self._synthesis.get(room_id)
        if previous is not None:
            previous.cancel()
        self._synthesis[room_id] = handle

    def clear_synthesis_timer(self, room_id: str) -> None:
        self._synthesis.pop(room_id, None)

    def has_pending_synthesis(self, room_id: str) -> bool:
        return room_id in self._synthesis
