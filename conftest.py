import random

import pytest

from dm_table.config import Settings
from dm_table.llm import Completion, LLMError
from dm_table.models import Member
from dm_table.narration import NarrationOrchestrator
from dm_table.registry import RoomRegistry
from dm_table.scheduler import TurnScheduler
from dm_table.synthesis import PartySynthesizer
from dm_table.table import GameTable


class RecordingHub:
    """Broadcaster that records every frame instead of sending it."""

    def __init__(self):
        self.emitted = []  # (room_id, event, payload, exclude)
        self.sent = []     # (connection_id, event, payload)
        self.rooms = {}

    def emit(self, room_id, event, payload, exclude=None):
        self.emitted.append((room_id, event, payload, exclude))

    def send(self, connection_id, event, payload):
        self.sent.append((connection_id, event, payload))

    def join(self, room_id, connection_id):
        self.rooms.setdefault(room_id, set()).add(connection_id)

    def leave(self, room_id, connection_id):
        self.rooms.get(room_id, set()).discard(connection_id)

    def events(self, name, room_id=None):
        return [p for r, e, p, _ in self.emitted if e == name and (room_id is None or r == room_id)]

    def sent_to(self, connection_id, name=None):
        return [p for c, e, p in self.sent if c == connection_id and (name is None or e == name)]


class StubLLM:
    """Provider stub: returns queued replies (or raises queued LLMErrors) in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []  # (model, messages)

    def queue(self, *responses):
        self.responses.extend(responses)

    async def __call__(self, model, messages):
        self.calls.append((model, list(messages)))
        if not self.responses:
            return Completion(text="")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, Completion):
            return item
        return Completion(text=item)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def settings():
    return Settings(
        openai_api_key="test-key",
        model="gpt-test",
        fallback_models=["gpt-fallback"],
        synthesis_delay_ms=20,
    )


@pytest.fixture
def hub():
    return RecordingHub()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(settings):
    return RoomRegistry(settings, persona_prompt="Eres el DM.")


@pytest.fixture
def scheduler(registry, hub, clock):
    return TurnScheduler(registry, hub, rng=random.Random(7), clock=clock)


@pytest.fixture
def stub_llm():
    return StubLLM()


@pytest.fixture
def orchestrator(registry, settings, stub_llm, clock):
    return NarrationOrchestrator(registry, settings, stub_llm, rng=random.Random(3), clock=clock)


@pytest.fixture
def synthesizer(registry, orchestrator, hub, settings):
    return PartySynthesizer(registry, orchestrator, hub, delay_ms=settings.synthesis_delay_ms)


@pytest.fixture
def table(registry, hub, scheduler, orchestrator, synthesizer, clock):
    return GameTable(
        registry, hub, scheduler, orchestrator, synthesizer,
        rng=random.Random(11), clock=clock,
    )


@pytest.fixture
def seat_players(registry):
    """Put named players into a room: seat_players("r1", "Ana", "Bruno")."""

    def _seat(room_id, *names):
        members = [Member(id=f"c-{name.lower()}", name=name) for name in names]
        for member in members:
            registry.add_member(room_id, member)
        return members

    return _seat


@pytest.fixture
def quota_error():
    return LLMError("You exceeded your current quota", status=429, code="insufficient_quota")
