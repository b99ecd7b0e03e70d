"""Per-connection event handling for a game table.

Transport adapters feed GameTable.handle() with `{"event": ..., "data": ...}`
frames. Events:

  join {room_id, name}     presence             chat {text, dm}
  roll {notation}          announce {text}      character:upsert {sheet}
  character:getAll         chat:clear {by}      dm:reset
  combat:get               combat:finishTurn

Combat is driven by the narrator ([CMD:...] directives) and by implicit
intents in messages addressed to it; the manual combat:* controls are refused.
"""

from __future__ import annotations

import logging
import random
import re
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from dm_table.dice import DiceError, roll_dice
from dm_table.directives import dispatch_directive, dispatch_directives, strip_directives
from dm_table.events import AnnounceBody, CharacterBody, ChatBody, ClearBody, JoinBody, RollBody
from dm_table.hub import RoomHub
from dm_table.intents import detect_intent, maybe_auto_start
from dm_table.models import CharacterEntry, CharacterSheet, Member
from dm_table.narration import NarrationOrchestrator
from dm_table.registry import RoomRegistry
from dm_table.scheduler import TurnScheduler
from dm_table.synthesis import PartySynthesizer

logger = logging.getLogger(__name__)

DEFAULT_ROOM = "default"
MAX_NAME_LEN = 40
MAX_ANNOUNCE_LEN = 2000

_DM_MARKER = re.compile(r"^@dm\b", re.IGNORECASE)

MANUAL_COMBAT_EVENTS = (
    "combat:start",
    "combat:reroll",
    "combat:next",
    "combat:prev",
    "combat:end",
    "combat:syncPlayers",
    "combat:settings",
    "combat:pause",
    "combat:resume",
)


@dataclass
class Seat:
    """What the table knows about one connection."""

    name: str
    room_id: str | None = None


Handler = Callable[[str, Seat, Any], Awaitable[None]]


class GameTable:
    def __init__(
        self,
        registry: RoomRegistry,
        hub: RoomHub,
        scheduler: TurnScheduler,
        orchestrator: NarrationOrchestrator,
        synthesizer: PartySynthesizer,
        *,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.registry = registry
        self.hub = hub
        self.scheduler = scheduler
        self.orchestrator = orchestrator
        self.synthesizer = synthesizer
        self._rng = rng or random.Random()
        self._clock = clock
        self._seats: dict[str, Seat] = {}
        self._handlers: dict[str, Handler] = {
            "join": self.join,
            "presence": self.presence,
            "chat": self.chat,
            "roll": self.roll,
            "announce": self.announce,
            "character:upsert": self.upsert_character,
            "character:getAll": self.list_characters,
            "chat:clear": self.clear_chat,
            "dm:reset": self.reset_context,
            "combat:get": self.combat_state,
            "combat:finishTurn": self.finish_turn,
        }
        for event in MANUAL_COMBAT_EVENTS:
            self._handlers[event] = self.refuse_combat_control

    def connect(self, connection_id: str) -> Seat:
        seat = Seat(name=f"Jugador-{connection_id[:4]}")
        self._seats[connection_id] = seat
        return seat

    def seat(self, connection_id: str) -> Seat | None:
        return self._seats.get(connection_id)

    async def handle(self, connection_id: str, message: dict[str, Any]) -> None:
        event = message.get("event")
        handler = self._handlers.get(event) if isinstance(event, str) else None
        if handler is None:
            logger.debug("ignoring unknown event %r from %s", event, connection_id)
            return
        seat = self._seats.get(connection_id) or self.connect(connection_id)
        if event != "join" and seat.room_id is None:
            return
        data = message.get("data")
        try:
            await handler(connection_id, seat, {} if data is None else data)
        except ValidationError as e:
            logger.warning("invalid %s payload from %s: %s", event, connection_id, e)
            self.hub.send(connection_id, "system", f"⚠️ Datos inválidos en {event}.")

    async def disconnect(self, connection_id: str) -> None:
        seat = self._seats.pop(connection_id, None)
        if seat is not None and seat.room_id is not None:
            self._leave(connection_id, seat)

    # ------------------------------------------------------------------
    # Presence
    # ------------------------------------------------------------------

    def _broadcast_presence(self, room_id: str) -> None:
        roster = [m.model_dump() for m in self.registry.present(room_id)]
        self.hub.emit(room_id, "presence", roster)

    def _broadcast_characters(self, room_id: str) -> None:
        sheets = [c.model_dump(by_alias=True) for c in self.registry.characters(room_id)]
        self.hub.emit(room_id, "character:all", sheets)

    def _leave(self, connection_id: str, seat: Seat) -> None:
        room_id = seat.room_id
        assert room_id is not None
        self.registry.remove_member(room_id, connection_id)
        self.hub.leave(room_id, connection_id)
        seat.room_id = None
        self._broadcast_presence(room_id)
        self.hub.emit(room_id, "system", f"{seat.name} ha salido de la mesa.")
        if self.registry.remove_character(room_id, connection_id) is not None:
            self._broadcast_characters(room_id)
        self.synthesizer.schedule(room_id)

    async def join(self, connection_id: str, seat: Seat, data: Any) -> None:
        body = JoinBody.model_validate(data)
        if seat.room_id is not None:
            self._leave(connection_id, seat)
        name = body.name.strip()
        if name:
            seat.name = name[:MAX_NAME_LEN]
        room_id = body.room_id.strip() or DEFAULT_ROOM
        seat.room_id = room_id

        self.hub.join(room_id, connection_id)
        self.hub.send(connection_id, "joined", {"room_id": room_id, "nickname": seat.name})
        self.registry.add_member(room_id, Member(id=connection_id, name=seat.name))
        self._broadcast_presence(room_id)
        self.hub.emit(room_id, "system", f"{seat.name} se ha unido a la mesa.", exclude=connection_id)
        if self.scheduler.in_combat(room_id):
            self.hub.send(connection_id, "combat:update", self.scheduler.snapshot(room_id))

    async def presence(self, connection_id: str, seat: Seat, data: Any) -> None:
        self._broadcast_presence(seat.room_id)

    # ------------------------------------------------------------------
    # Chat and narrator
    # ------------------------------------------------------------------

    async def chat(self, connection_id: str, seat: Seat, data: Any) -> None:
        body = ChatBody.model_validate(data)
        room_id = seat.room_id
        self.hub.emit(room_id, "chat", {"from": seat.name, "text": body.text, "ts": self._clock()})
        if not (body.dm or _DM_MARKER.match(body.text)):
            return

        user_text = _DM_MARKER.sub("", body.text, count=1).strip()
        intent = detect_intent(user_text)
        if intent is not None:
            dispatch_directive(self.scheduler, room_id, intent)
        maybe_auto_start(self.scheduler, room_id, user_text)

        raw = await self.orchestrator.ask(room_id, user_text or body.text)

        dispatch_directives(self.scheduler, room_id, raw)
        reply = strip_directives(raw)
        if reply.strip():
            self.hub.emit(room_id, "dm", {"from": "DM", "text": reply, "ts": self._clock()})
        maybe_auto_start(self.scheduler, room_id, reply)

    async def roll(self, connection_id: str, seat: Seat, data: Any) -> None:
        body = RollBody.model_validate(data)
        try:
            result = roll_dice(body.notation, self._rng)
        except DiceError as e:
            self.hub.send(connection_id, "system", f"🎲 Error: {e}")
            return
        self.hub.emit(seat.room_id, "roll", {
            "from": seat.name,
            "notation": body.notation,
            "detail": result.detail,
            "rolls": result.rolls,
            "total": result.total,
            "ts": self._clock(),
        })

    async def announce(self, connection_id: str, seat: Seat, data: Any) -> None:
        text = data if isinstance(data, str) else AnnounceBody.model_validate(data).text
        if not text.strip():
            return
        self.hub.emit(seat.room_id, "system", text[:MAX_ANNOUNCE_LEN])

    async def clear_chat(self, connection_id: str, seat: Seat, data: Any) -> None:
        body = ClearBody.model_validate(data)
        who = (body.by.strip() or seat.name or "alguien")[:MAX_NAME_LEN]
        self.hub.emit(seat.room_id, "chat:cleared", {"by": who, "ts": self._clock()})
        self.hub.emit(seat.room_id, "system", f"🧹 {who} ha vaciado el chat (solo la vista).")

    async def reset_context(self, connection_id: str, seat: Seat, data: Any) -> None:
        self.orchestrator.reset(seat.room_id)
        self.hub.emit(seat.room_id, "system", "♻️ El contexto del DM se ha reiniciado para esta mesa.")

    # ------------------------------------------------------------------
    # Character sheets
    # ------------------------------------------------------------------

    async def upsert_character(self, connection_id: str, seat: Seat, data: Any) -> None:
        body = CharacterBody.model_validate(data)
        sheet = CharacterSheet.model_validate(body.sheet)
        self.registry.upsert_character(
            seat.room_id, CharacterEntry(id=connection_id, name=seat.name, sheet=sheet)
        )
        self._broadcast_characters(seat.room_id)
        self.synthesizer.schedule(seat.room_id)

    async def list_characters(self, connection_id: str, seat: Seat, data: Any) -> None:
        sheets = [c.model_dump(by_alias=True) for c in self.registry.characters(seat.room_id)]
        self.hub.send(connection_id, "character:all", sheets)

    # ------------------------------------------------------------------
    # Combat
    # ------------------------------------------------------------------

    async def combat_state(self, connection_id: str, seat: Seat, data: Any) -> None:
        self.hub.send(connection_id, "combat:update", self.scheduler.snapshot(seat.room_id))

    async def finish_turn(self, connection_id: str, seat: Seat, data: Any) -> None:
        self.scheduler.finish_turn(seat.room_id, connection_id)

    async def refuse_combat_control(self, connection_id: str, seat: Seat, data: Any) -> None:
        self.hub.send(connection_id, "system", "⛔ Solo el DM (IA) controla el combate.")
