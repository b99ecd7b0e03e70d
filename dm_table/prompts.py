"""Handlebars prompt rendering: narrator persona and party context."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any

import pybars

from dm_table.config import DEFAULT_TURN_SEC
from dm_table.models import CharacterEntry

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}

NO_SHEETS = "No hay fichas compartidas en esta sala."


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


PERSONA_TEMPLATE = """Eres "The Dungeon Master", un DM experto de Dungeons & Dragons 5e.
- Mantén el tono inmersivo, con detalles sensoriales sin alargar en exceso.
- Usa estrictamente las reglas básicas de 5e en combate.
- Si falta información (CA, bonificadores, DC, resistencia, etc.), pregunta o propone un valor razonable.
- Da 3-5 opciones claras al final de cada turno.
- Evita metajuego y no mates gratuitamente a los PJ.
- Responde SIEMPRE en español.

REGLAS DE COMBATE Y TIRADAS (5e):
- Ataques: 1d20 + bonificador de característica + competencia contra la CA del objetivo.
- Ventaja/desventaja: tira 2d20 y elige mayor/menor.
- Crítico: 20 natural duplica los dados de daño; 1 natural es fallo automático.
- Hechizos con salvación: el objetivo tira contra la CD de conjuros del lanzador.
- DC rápidas: 10 fácil, 12-13 medio, 15 difícil, 18 muy difícil, 20+ extremo.
- Si el jugador ya publicó su tirada, úsala sin pedir repetir.
- No tires tú salvo que te lo pidan: solicita la tirada y espera.

FORMATO EN COMBATE:
1) Pide la tirada exacta (ataque, salvación, etc.).
2) Con el resultado, adjudica e indica el daño que tirar.
3) Narra el efecto y anuncia el ajuste de HP ("-X HP a [nombre]. HP estimado Y/Z").
4) Da opciones para cerrar turno y avanza.

COORDINACIÓN:
- Usa fichas compartidas si existen; si faltan valores, pregunta o asume y dilo.
- No reveles estadísticas de enemigos salvo deducción de jugadores.

COMANDOS (escribe UNO al final cuando aplique):
{{#each commands}}{{{this}}}
{{/each}}No inventes otros comandos ni uses comillas. "duration" está en segundos; si lo omites, el servidor usa {{default_turn_sec}} s.
SI introduces criaturas hostiles, un enfrentamiento o pides "tirar iniciativa", TERMINA tu respuesta con [CMD:START_COMBAT]"""

_COMMAND_EXAMPLES = [
    "[CMD:START_COMBAT]",
    "[CMD:START_COMBAT duration=SEGUNDOS]",
    "[CMD:REROLL]",
    "[CMD:NEXT_TURN]",
    "[CMD:PREV_TURN]",
    "[CMD:END_COMBAT]",
    "[CMD:PAUSE]",
    "[CMD:RESUME]",
    "[CMD:SETTINGS duration=SEGUNDOS auto=0|1 delay=SEGUNDOS]",
    "[CMD:SYNC_PLAYERS]",
]

PARTY_TEMPLATE = """Contexto del grupo:
{{#each party}}- {{{name}}} · {{{clazz}}} {{level}} · CA {{ac}} · HP {{hp}}/{{max_hp}} · PP {{pp}} · Vel {{speed}}
{{/each}}"""


def build_persona_prompt() -> str:
    return render_prompt(PERSONA_TEMPLATE, {
        "commands": _COMMAND_EXAMPLES,
        "default_turn_sec": str(DEFAULT_TURN_SEC),
    })


def _party_line(entry: CharacterEntry) -> dict[str, str]:
    sheet = entry.sheet
    max_hp = sheet.max_hp if sheet.max_hp is not None else 0
    if sheet.hp is not None:
        hp = sheet.hp
    else:
        hp = max_hp
    return {
        "name": sheet.name or entry.name or "PJ",
        "clazz": sheet.clazz or "Clase ?",
        "level": str(sheet.level if sheet.level is not None else 1),
        "ac": str(sheet.ac if sheet.ac is not None else 10),
        "hp": str(hp),
        "max_hp": str(max_hp),
        "pp": str(sheet.passive_perception if sheet.passive_perception is not None else 10),
        "speed": str(sheet.speed if sheet.speed is not None else 30),
    }


def party_context(characters: Iterable[CharacterEntry]) -> str:
    """One compact line per shared sheet, or NO_SHEETS when there are none."""
    party = [_party_line(entry) for entry in characters]
    if not party:
        return NO_SHEETS
    return render_prompt(PARTY_TEMPLATE, {"party": party}).rstrip("\n")
