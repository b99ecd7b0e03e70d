"""[CMD:NAME key=value ...] directives embedded in narrator text.

parse_directives() extracts known directives left to right; unknown names and
option tokens without "=" are dropped. strip_directives() removes every
occurrence before the text is shown to players. dispatch_directive() maps a
directive onto the matching TurnScheduler call.
"""

from __future__ import annotations

import logging
import math
import re

from dm_table.models import Directive
from dm_table.scheduler import TurnScheduler

logger = logging.getLogger(__name__)

DIRECTIVE_NAMES = frozenset({
    "START_COMBAT",
    "REROLL",
    "NEXT_TURN",
    "PREV_TURN",
    "END_COMBAT",
    "PAUSE",
    "RESUME",
    "SETTINGS",
    "SYNC_PLAYERS",
})

TRUTHY = frozenset({"1", "true", "si", "sí"})

_DIRECTIVE_RE = re.compile(r"\[CMD:([A-Z_]+)([^\]]*)\]")
_OPTION_RE = re.compile(r"^([A-Za-z_]+)=(.+)$")
_DIRECTIVE_LINE_RE = re.compile(r"^\s*\[CMD:[^\]]+\]\s*$", re.IGNORECASE)
_INLINE_RE = re.compile(r"[ \t]*\[CMD:[^\]]+\][ \t]*", re.IGNORECASE)
_SPACES_RE = re.compile(r"[ \t]{2,}")
_BLANK_LINES_RE = re.compile(r"\n{3,}")


def parse_options(raw: str) -> dict[str, str]:
    options: dict[str, str] = {}
    for token in raw.split():
        match = _OPTION_RE.match(token)
        if match:
            options[match.group(1).lower()] = match.group(2)
    return options


def parse_directives(text: str) -> list[Directive]:
    directives: list[Directive] = []
    for match in _DIRECTIVE_RE.finditer(text or ""):
        name = match.group(1)
        if name not in DIRECTIVE_NAMES:
            logger.debug("ignoring unknown directive %s", name)
            continue
        directives.append(Directive(name=name, options=parse_options(match.group(2))))
    return directives


def strip_directives(text: str) -> str:
    """Remove all directives: directive-only lines vanish, inline ones become a space."""
    if not text:
        return text
    kept = [line for line in text.splitlines() if not _DIRECTIVE_LINE_RE.match(line)]
    out = _INLINE_RE.sub(" ", "\n".join(kept))
    out = _SPACES_RE.sub(" ", out)
    out = "\n".join(line.rstrip() for line in out.split("\n"))
    return _BLANK_LINES_RE.sub("\n\n", out).strip()


def _number(raw: str | None) -> float | None:
    if raw is None or raw == "":
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def _truthy(raw: str) -> bool:
    return raw.strip().lower() in TRUTHY


def dispatch_directive(scheduler: TurnScheduler, room_id: str, directive: Directive) -> None:
    opts = directive.options
    name = directive.name
    logger.info("room=%s directive %s %s", room_id, name, opts or "")

    if name == "START_COMBAT":
        scheduler.start(
            room_id,
            duration_sec=_number(opts.get("duration", opts.get("duracion"))),
            auto_advance=_truthy(opts.get("auto", "1")),
            auto_delay_sec=_number(opts.get("delay")),
        )
    elif name == "SETTINGS":
        auto = opts.get("auto")
        scheduler.apply_settings(
            room_id,
            duration_sec=_number(opts.get("duration", opts.get("duracion"))),
            auto_advance=_truthy(auto) if auto is not None else None,
            auto_delay_sec=_number(opts.get("delay")),
        )
    elif name == "REROLL":
        scheduler.reroll(room_id)
    elif name == "NEXT_TURN":
        scheduler.advance_next(room_id)
    elif name == "PREV_TURN":
        scheduler.advance_prev(room_id)
    elif name == "END_COMBAT":
        scheduler.end(room_id)
    elif name == "PAUSE":
        scheduler.pause(room_id)
    elif name == "RESUME":
        scheduler.resume(room_id)
    elif name == "SYNC_PLAYERS":
        scheduler.sync_roster(room_id)


def dispatch_directives(scheduler: TurnScheduler, room_id: str, text: str) -> list[Directive]:
    """Run every directive found in `text`, in order. Returns what was run."""
    directives = parse_directives(text)
    for directive in directives:
        dispatch_directive(scheduler, room_id, directive)
    return directives
