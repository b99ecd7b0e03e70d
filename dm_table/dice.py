"""Dice notation: NdF with an optional +M / -M modifier."""

from __future__ import annotations

import random
import re

from pydantic import BaseModel

_NOTATION_RE = re.compile(r"^(\d+)d(\d+)([+-]\d+)?$")
MAX_DICE = 100


class DiceError(ValueError):
    """Raised for notation that cannot be rolled."""


class DiceRoll(BaseModel):
    count: int
    faces: int
    modifier: int
    rolls: list[int]
    total: int

    @property
    def detail(self) -> str:
        return f"{self.count}d{self.faces}{self.modifier:+d}"


def roll_dice(notation: str = "1d20+0", rng: random.Random | None = None) -> DiceRoll:
    match = _NOTATION_RE.match((notation or "").strip().lower())
    if not match:
        raise DiceError("Notación inválida. Usa p.ej. 1d20+5")
    count, faces = int(match.group(1)), int(match.group(2))
    modifier = int(match.group(3) or 0)
    if count <= 0 or count > MAX_DICE or faces <= 1:
        raise DiceError("Dados inválidos.")
    rng = rng or random.Random()
    rolls = [rng.randint(1, faces) for _ in range(count)]
    return DiceRoll(count=count, faces=faces, modifier=modifier, rolls=rolls, total=sum(rolls) + modifier)
