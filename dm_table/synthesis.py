"""Debounced party summaries.

Any roster or sheet change calls schedule(); the last call inside the
debounce window wins and fires once. The summary comes from the narrator's
background entry point and is broadcast as a narrator message.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

from dm_table.directives import strip_directives
from dm_table.hub import Broadcaster
from dm_table.narration import NarrationOrchestrator
from dm_table.registry import RoomRegistry

logger = logging.getLogger(__name__)

SYNTHESIS_INSTRUCTION = (
    "Sistema de mesa: fichas añadidas/actualizadas. Sintetiza el grupo en 1-2 frases "
    "y sugiere un siguiente paso. NO añadas [CMD:...]"
)


class PartySynthesizer:
    def __init__(
        self,
        registry: RoomRegistry,
        orchestrator: NarrationOrchestrator,
        broadcaster: Broadcaster,
        *,
        delay_ms: int = 1600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.registry = registry
        self.orchestrator = orchestrator
        self.broadcaster = broadcaster
        self.delay_ms = delay_ms
        self._clock = clock
        self._tasks: set[asyncio.Task] = set()

    def schedule(self, room_id: str) -> None:
        """(Re)arm the room's synthesis timer, replacing any pending one."""
        loop = asyncio.get_running_loop()
        handle = loop.call_later(self.delay_ms / 1000, self._fire, room_id)
        self.registry.replace_synthesis_timer(room_id, handle)

    def _fire(self, room_id: str) -> None:
        self.registry.clear_synthesis_timer(room_id)
        task = asyncio.get_running_loop().create_task(self.synthesize(room_id))
        self._tasks.add(task)
        task.add_done_callback(self._finished)

    def _finished(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("party synthesis failed", exc_info=task.exception())

    async def synthesize(self, room_id: str) -> str | None:
        """Summarise the room's sheets and broadcast it. None when nothing to say."""
        if not self.registry.characters(room_id):
            return None
        reply = await self.orchestrator.ask_background(room_id, SYNTHESIS_INSTRUCTION)
        text = strip_directives(reply or "")
        if not text.strip():
            return None
        self.broadcaster.emit(room_id, "dm", {"from": "DM", "text": text, "ts": self._clock()})
        return text
