"""Natural-language combat intents and hostile-encounter detection.

Player text is normalised (diacritics stripped, case-folded) and matched
against an ordered rule table; the first rule that matches wins. When no
rule matches, ad-hoc settings ("duracion 30", "delay=2", "auto no") become a
SETTINGS directive carrying only the fields found. Both Spanish and English
phrasing are recognised.
"""

from __future__ import annotations

import logging
import re
import unicodedata

from dm_table.models import Directive
from dm_table.scheduler import TurnScheduler

logger = logging.getLogger(__name__)

HOSTILE_NOTICE = "⚔️ Encuentro hostil detectado: iniciando combate."


def normalize(text: str) -> str:
    """Case-fold and drop combining marks ("Sí, ¡ARAÑA!" → "si, ¡arana!")."""
    decomposed = unicodedata.normalize("NFD", (text or "").casefold())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


# (directive name, pattern over normalised text)
INTENT_RULES: list[tuple[str, re.Pattern[str]]] = [
    ("START_COMBAT", re.compile(
        r"\b(inicia(r)?|empieza(r)?|empezamos|comenzar|comienza|comenzamos)\b.*\b(combate|encuentro)\b"
        r"|^(let'?s\s+)?start\b.*\b(combat|encounter|fight)\b"
    )),
    ("REROLL", re.compile(
        r"\b(reroll|reordenar|reordena)\b"
        r"|\bre[-\s]?(tirar|tira|tiramos)\b.*\b(iniciativa|orden)\b"
    )),
    ("NEXT_TURN", re.compile(
        r"\b(siguiente|avanza(r|mos)?|proximo turno|next turn)\b"
        r"|\bpasa(r|mos)?\s+(al|de)\s+turno\b"
    )),
    ("PREV_TURN", re.compile(r"\b(anterior|retrocede(r)?|vuelve atras|previous turn|go back)\b")),
    ("END_COMBAT", re.compile(
        r"\b(termina(r)?|fin|acaba(r)?)\s*(el\s+)?(combate|encuentro)\b"
        r"|\bend\s+(the\s+)?(combat|encounter|fight)\b"
    )),
    ("PAUSE", re.compile(r"\b(pausa|pausar|deten|detener|stop|pause)\b")),
    ("RESUME", re.compile(r"\b(reanuda|reanudar|resume|continuar|seguir|play)\b")),
]

_DURATION_RE = re.compile(r"\b(duracion|duration)\s*[=:]?\s*(\d{1,4})\b")
_DELAY_RE = re.compile(r"\b(retardo|delay)\s*[=:]?\s*(\d{1,2})\b")
_AUTO_RE = re.compile(r"\b(auto|automatico|autoavance)\s*[=:]?\s*(si|no|true|false|1|0)\b")


def _settings_directive(text: str) -> Directive | None:
    options: dict[str, str] = {}
    if m := _DURATION_RE.search(text):
        options["duration"] = m.group(2)
    if m := _DELAY_RE.search(text):
        options["delay"] = m.group(2)
    if m := _AUTO_RE.search(text):
        options["auto"] = m.group(2)
    return Directive(name="SETTINGS", options=options) if options else None


def detect_intent(text: str) -> Directive | None:
    """Map a player's phrasing onto the directive vocabulary, or None."""
    normalized = normalize(text)
    for name, pattern in INTENT_RULES:
        if pattern.search(normalized):
            return Directive(name=name)
    return _settings_directive(normalized)


_HOSTILE_VERBS = re.compile(
    r"(atac|embosc|arremet|abalanz|hostil|pelea|combate|iniciativa|iniciad|turno"
    r"|attack|ambush|charge|hostile|fight|initiative)"
)
_CREATURES = re.compile(
    r"\b(goblin|trasgo|orco|ogro|troll|trol|bandid|esquelet|zombi|lobo|aran|mimic|drag|gnoll"
    r"|kobold|ogre|sucub|diabl|demon|espectr|ghoul|bestia"
    r"|orc|bandit|skeleton|wolf|wolves|spider|beast|wraith|succub|devil)"
)


def looks_hostile(text: str) -> bool:
    """A hostility verb plus a creature, or any explicit mention of initiative."""
    normalized = normalize(text)
    if not _HOSTILE_VERBS.search(normalized):
        return False
    return bool(_CREATURES.search(normalized)) or "iniciativa" in normalized or "initiative" in normalized


def maybe_auto_start(scheduler: TurnScheduler, room_id: str, text: str) -> bool:
    """Start combat when `text` reads as a hostile encounter and none is running."""
    if scheduler.in_combat(room_id) or not looks_hostile(text):
        return False
    if scheduler.start(room_id) is None:
        return False
    scheduler.broadcaster.emit(room_id, "system", HOSTILE_NOTICE)
    logger.info("room=%s hostile encounter detected, combat started", room_id)
    return True
