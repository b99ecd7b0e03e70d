"""Per-room combat turn scheduler.

Lifecycle: start → (advance_next | advance_prev | pause | resume |
apply_settings | sync_roster | reroll)* → end.

Auto-advance is a single-shot loop.call_later handle stored on the
CombatState. When it fires it performs the same transition as advance_next
and re-arms itself, so the room keeps its own clock while
`running and auto_advance`. Arming always cancels the previous handle first.

Every operation is a silent no-op when the room has no combat; nothing here
raises for missing state. There is no lock around CombatState: handlers for
the same room may interleave at await points, and each operation is written
to leave a valid state whatever ran before it.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Callable
from typing import Any

from dm_table.config import (
    DEFAULT_AUTO_DELAY_SEC,
    DEFAULT_TURN_SEC,
    MAX_AUTO_DELAY_SEC,
    MAX_SETTINGS_TURN_SEC,
    MAX_START_TURN_SEC,
    MIN_TURN_SEC,
)
from dm_table.hub import Broadcaster
from dm_table.models import CombatState, InitiativeEntry, Member, ended_snapshot
from dm_table.registry import RoomRegistry

logger = logging.getLogger(__name__)


def _clamp(value: float, low: int, high: int) -> int:
    return int(max(low, min(high, round(value))))


def _ordered(entries: list[InitiativeEntry]) -> list[InitiativeEntry]:
    """Highest score first; ties broken by name."""
    return sorted(entries, key=lambda e: (-e.score, e.name.casefold(), e.name))


class TurnScheduler:
    def __init__(
        self,
        registry: RoomRegistry,
        broadcaster: Broadcaster,
        *,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.registry = registry
        self.broadcaster = broadcaster
        self._rng = rng or random.Random()
        self._clock = clock

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _roll(self) -> int:
        return self._rng.randint(1, 20)

    def _begin_turn(self, state: CombatState) -> None:
        state.turn_ends_at = self._clock() + state.duration_sec

    def _publish(self, state: CombatState) -> None:
        self.broadcaster.emit(state.room_id, "combat:update", state.snapshot(self._clock()))

    def _announce(self, room_id: str, text: str) -> None:
        self.broadcaster.emit(room_id, "system", text)

    def _announce_order(self, state: CombatState, title: str) -> None:
        lines = "\n".join(
            f"{i}) **{e.name}** ({e.score})" for i, e in enumerate(state.initiative, start=1)
        )
        self._announce(state.room_id, f"🛡️ **Orden de iniciativa: {title}**\n{lines}")

    def _step_forward(self, state: CombatState) -> None:
        following = state.turn_index + 1
        if following >= len(state.initiative):
            state.turn_index = 0
            state.round += 1
            self._announce(
                state.room_id,
                f"🌀 **Ronda {state.round}**: turno de **{state.initiative[0].name}**",
            )
        else:
            state.turn_index = following
        self._begin_turn(state)

    def _arm(self, state: CombatState) -> None:
        state.cancel_timer()
        if not (state.running and state.auto_advance):
            return
        delay = max(0.0, state.turn_ends_at - self._clock()) + max(0, state.auto_delay_sec)
        loop = asyncio.get_running_loop()
        state.timer = loop.call_later(delay, self._on_timer, state)
        logger.debug("room=%s auto-advance armed in %.1fs", state.room_id, delay)

    def _on_timer(self, state: CombatState) -> None:
        state.timer = None
        # A replaced or ended combat keeps no claim on the room.
        if self.registry.combat(state.room_id) is not state or not state.initiative:
            return
        logger.info("room=%s turn timer expired", state.room_id)
        self._step_forward(state)
        self._publish(state)
        self._arm(state)

    def _active(self, room_id: str) -> CombatState | None:
        state = self.registry.combat(room_id)
        if state is None or not state.initiative:
            return None
        return state

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def in_combat(self, room_id: str) -> bool:
        return self._active(room_id) is not None

    def snapshot(self, room_id: str) -> dict[str, Any]:
        state = self.registry.combat(room_id)
        if state is None:
            return ended_snapshot(room_id, self._clock())
        return state.snapshot(self._clock())

    def start(
        self,
        room_id: str,
        duration_sec: float | None = None,
        auto_advance: bool = True,
        auto_delay_sec: float | None = None,
    ) -> CombatState | None:
        """Roll initiative for everyone present and open round 1."""
        present = self.registry.present(room_id)
        if not present:
            return None

        initiative = _ordered([
            InitiativeEntry(id=m.id, name=m.name, score=self._roll()) for m in present
        ])
        if not duration_sec or duration_sec <= 0:
            duration_sec = DEFAULT_TURN_SEC
        if auto_delay_sec is None:
            auto_delay_sec = DEFAULT_AUTO_DELAY_SEC

        state = CombatState(
            room_id=room_id,
            initiative=initiative,
            duration_sec=_clamp(duration_sec, MIN_TURN_SEC, MAX_START_TURN_SEC),
            auto_advance=auto_advance,
            auto_delay_sec=_clamp(auto_delay_sec, 0, MAX_AUTO_DELAY_SEC),
        )
        self._begin_turn(state)
        self.registry.set_combat(state)
        logger.info("room=%s combat started with %d participants", room_id, len(initiative))

        self._announce_order(state, "Inicial")
        self._publish(state)
        self._arm(state)
        return state

    def reroll(self, room_id: str) -> CombatState | None:
        """Re-roll every entry and restart at round 1; starts combat if none."""
        state = self._active(room_id)
        if state is None:
            return self.start(room_id)

        state.initiative = _ordered([
            InitiativeEntry(id=e.id, name=e.name, score=self._roll()) for e in state.initiative
        ])
        state.round = 1
        state.turn_index = 0
        state.running = True
        self._begin_turn(state)

        self._announce_order(state, "Re-tirada")
        self._publish(state)
        self._arm(state)
        return state

    def advance_next(self, room_id: str) -> CombatState | None:
        state = self._active(room_id)
        if state is None:
            return None
        self._step_forward(state)
        state.running = True
        self._publish(state)
        self._arm(state)
        return state

    def advance_prev(self, room_id: str) -> CombatState | None:
        """Step back one turn. Wrapping to the last entry keeps the round."""
        state = self._active(room_id)
        if state is None:
            return None
        state.turn_index = (state.turn_index - 1) % len(state.initiative)
        self._begin_turn(state)
        state.running = True
        self._publish(state)
        self._arm(state)
        return state

    def end(self, room_id: str) -> bool:
        state = self.registry.drop_combat(room_id)
        if state is None:
            return False
        logger.info("room=%s combat ended at round %d", room_id, state.round)
        self._announce(room_id, "🏁 **El combate ha terminado.**")
        self.broadcaster.emit(room_id, "combat:update", ended_snapshot(room_id, self._clock()))
        return True

    def pause(self, room_id: str) -> CombatState | None:
        state = self._active(room_id)
        if state is None or not state.running:
            return None
        state.running = False
        state.cancel_timer()
        self._announce(room_id, "⏸️ Combate en pausa.")
        self._publish(state)
        return state

    def resume(self, room_id: str) -> CombatState | None:
        """Restart the current turn's clock from now."""
        state = self._active(room_id)
        if state is None or state.running:
            return None
        state.running = True
        self._begin_turn(state)
        self._announce(room_id, "▶️ Combate reanudado.")
        self._publish(state)
        self._arm(state)
        return state

    def apply_settings(
        self,
        room_id: str,
        duration_sec: float | None = None,
        auto_advance: bool | None = None,
        auto_delay_sec: float | None = None,
    ) -> CombatState | None:
        """Overwrite only the provided fields.

        Turn length is capped at MAX_SETTINGS_TURN_SEC here, tighter than the
        ceiling `start` accepts.
        """
        state = self._active(room_id)
        if state is None:
            return None
        if duration_sec is not None and duration_sec > 0:
            state.duration_sec = _clamp(duration_sec, MIN_TURN_SEC, MAX_SETTINGS_TURN_SEC)
        if auto_advance is not None:
            state.auto_advance = auto_advance
        if auto_delay_sec is not None:
            state.auto_delay_sec = _clamp(auto_delay_sec, 0, MAX_AUTO_DELAY_SEC)
        if state.running:
            self._begin_turn(state)
        self._publish(state)
        self._arm(state)
        return state

    def sync_roster(self, room_id: str) -> list[Member]:
        """Append present members missing from the order, score 0, unsorted."""
        state = self._active(room_id)
        if state is None:
            return []
        known = {e.id for e in state.initiative}
        newcomers = [m for m in self.registry.present(room_id) if m.id not in known]
        if not newcomers:
            return []
        state.initiative.extend(InitiativeEntry(id=m.id, name=m.name, score=0) for m in newcomers)
        self._publish(state)
        self._announce(room_id, f"➕ Añadidos: {', '.join(m.name for m in newcomers)}")
        return newcomers

    def finish_turn(self, room_id: str, connection_id: str) -> bool:
        """End the caller's own turn. Anyone else gets a private refusal."""
        state = self._active(room_id)
        if state is None:
            return False
        active = state.current
        if active is None:
            return False
        if active.id != connection_id:
            self.broadcaster.send(
                connection_id, "system", "⛔ Solo el jugador en turno puede finalizar su turno."
            )
            return False
        self._announce(room_id, f"⏭️ **{active.name}** finaliza su turno.")
        self._step_forward(state)
        state.running = True
        self._publish(state)
        self._arm(state)
        return True
