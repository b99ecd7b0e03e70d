"""Narrator request orchestration.

ask() flow for one player message:
  1. Per-room rate limit: an early request gets WAIT_NOTICE and touches nothing.
  2. Record the player message; compose [persona, party context, *history].
  3. Offline room (room override, global DM_MODE, or no API key) → local reply.
  4. Provider success → record the reply, trim history, return the raw text.
     Directive dispatch and sanitising happen in the caller.
  5. Quota exhausted → this room goes offline for good; notice + local reply.
     Any other provider failure → short diagnostic; mode and assistant
     history untouched (the player message stays recorded).

ask_background() composes the same way but skips the rate limit, never
writes history and never changes the room mode. PartySynthesizer uses it.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable

from dm_table.config import Settings
from dm_table.llm import LLMError, NarrationLLM, complete_with_fallback
from dm_table.models import ChatTurn, ConversationContext
from dm_table.prompts import party_context
from dm_table.registry import RoomRegistry

logger = logging.getLogger(__name__)

WAIT_NOTICE = "⏳ Espera un poco antes de volver a preguntar al DM."
QUOTA_NOTICE = "⚠️ El proveedor de narración no tiene cuota en este momento. Cambio automático a DM local."
OFFLINE_PARTY_NOTICE = "📘 He actualizado mentalmente el estado del grupo."

_HOOKS = [
    "El aire huele a humedad y madera vieja.",
    "Una brisa apaga por un segundo tu antorcha.",
    "Oyes un murmullo detrás de una pared de piedra.",
    "El suelo cruje como si algo se moviese debajo.",
]

_OPTIONS = [
    "Examinar más de cerca (Investigación DC 12).",
    "Avanzar con sigilo (Sigilo DC 13).",
    "Llamar a quien esté ahí.",
    "Preparar un arma y esperar.",
    "Retroceder y buscar otra ruta.",
]


def offline_reply(user_text: str, rng: random.Random | None = None) -> str:
    """Local stand-in narration: a hook and four shuffled options."""
    rng = rng or random.Random()
    options = rng.sample(_OPTIONS, 4)
    return "\n".join([
        f'Tomas una decisión tras decir: "{user_text}".',
        rng.choice(_HOOKS),
        "",
        "¿Qué haces ahora? Opciones:",
        *(f"{i}) {option}" for i, option in enumerate(options, start=1)),
    ])


class NarrationOrchestrator:
    def __init__(
        self,
        registry: RoomRegistry,
        settings: Settings,
        llm: NarrationLLM | None = None,
        *,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.registry = registry
        self.settings = settings
        self.llm = llm
        self._rng = rng or random.Random()
        self._clock = clock

    def is_offline(self, ctx: ConversationContext) -> bool:
        return ctx.mode == "offline" or self.settings.offline or self.llm is None

    def compose(self, room_id: str, ctx: ConversationContext) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": ctx.persona_prompt},
            {"role": "system", "content": party_context(self.registry.characters(room_id))},
            *(turn.model_dump() for turn in ctx.history),
        ]

    def _record_reply(self, ctx: ConversationContext, reply: str) -> None:
        ctx.history.append(ChatTurn(role="assistant", content=reply))
        if len(ctx.history) > self.settings.history_limit:
            del ctx.history[: self.settings.history_trim]

    def _rate_limited(self, ctx: ConversationContext) -> bool:
        now = self._clock()
        if ctx.last_request_at is not None:
            if (now - ctx.last_request_at) * 1000 < self.settings.rate_limit_ms:
                return True
        ctx.last_request_at = now
        return False

    async def ask(self, room_id: str, user_message: str) -> str:
        """Narrator reply for a player message (raw, directives included)."""
        ctx = self.registry.context(room_id)
        if self._rate_limited(ctx):
            logger.debug("room=%s narrator request rate limited", room_id)
            return WAIT_NOTICE

        ctx.history.append(ChatTurn(role="user", content=user_message))
        messages = self.compose(room_id, ctx)

        if self.is_offline(ctx):
            reply = offline_reply(user_message, self._rng)
            self._record_reply(ctx, reply)
            return reply

        try:
            reply = await complete_with_fallback(
                self.llm, messages, self.settings.model_candidates()
            )
        except LLMError as e:
            if e.quota_exhausted:
                logger.error("room=%s provider quota exhausted, switching to offline", room_id)
                ctx.mode = "offline"
                fallback = offline_reply(user_message, self._rng)
                self._record_reply(ctx, fallback)
                return f"{QUOTA_NOTICE}\n\n{fallback}"
            logger.error("room=%s narrator request failed: %s", room_id, e)
            return f"⚠️ Error del modelo: {str(e) or e.code or e.status or 'desconocido'}"

        self._record_reply(ctx, reply)
        return reply

    async def ask_background(self, room_id: str, instruction: str) -> str:
        """One-off request on the room's context; history and mode stay as they are."""
        ctx = self.registry.context(room_id)
        messages = [*self.compose(room_id, ctx), {"role": "user", "content": instruction}]

        if self.is_offline(ctx):
            return f"{OFFLINE_PARTY_NOTICE}\n{messages[1]['content']}"

        try:
            return await complete_with_fallback(
                self.llm, messages, self.settings.model_candidates()
            )
        except LLMError as e:
            logger.error("room=%s background narrator request failed: %s", room_id, e)
            return OFFLINE_PARTY_NOTICE

    def reset(self, room_id: str) -> None:
        """Forget the room's conversation and rate-limit clock."""
        ctx = self.registry.context(room_id)
        ctx.history.clear()
        ctx.last_request_at = None
