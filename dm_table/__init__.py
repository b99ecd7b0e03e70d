"""dm-table: live multiplayer tabletop sessions with an AI narrator.

Core services (all room state lives in one RoomRegistry):

    TurnScheduler            per-room initiative, rounds and auto-advance timer
    directives / intents     [CMD:...] extraction and natural-language intents
    NarrationOrchestrator    rate limit, context composition, provider fallback
    PartySynthesizer         debounced party summary after sheet changes
    GameTable                per-connection event handling on top of the above
"""

from dm_table.config import Settings, load_settings
from dm_table.narration import NarrationOrchestrator
from dm_table.registry import RoomRegistry
from dm_table.scheduler import TurnScheduler
from dm_table.synthesis import PartySynthesizer
from dm_table.table import GameTable

__all__ = [
    "GameTable",
    "NarrationOrchestrator",
    "PartySynthesizer",
    "RoomRegistry",
    "Settings",
    "TurnScheduler",
    "load_settings",
]
