from __future__ import annotations

from fastapi import FastAPI

from dm_table.config import Settings, load_settings
from dm_table.hub import ConnectionHub
from dm_table.llm import NarrationLLM, OpenAIChatLLM
from dm_table.narration import NarrationOrchestrator
from dm_table.registry import RoomRegistry
from dm_table.routes import api_router, socket_router
from dm_table.scheduler import TurnScheduler
from dm_table.synthesis import PartySynthesizer
from dm_table.table import GameTable


def create_app(settings: Settings | None = None, llm: NarrationLLM | None = None) -> FastAPI:
    settings = settings or load_settings()
    if llm is None and settings.openai_api_key:
        llm = OpenAIChatLLM(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            org=settings.openai_org,
            project=settings.openai_project,
            max_tokens=settings.max_tokens,
            temperature=settings.temperature,
        )

    hub = ConnectionHub()
    registry = RoomRegistry(settings)
    scheduler = TurnScheduler(registry, hub)
    orchestrator = NarrationOrchestrator(registry, settings, llm)
    synthesizer = PartySynthesizer(
        registry, orchestrator, hub, delay_ms=settings.synthesis_delay_ms
    )

    app = FastAPI(title="DM Table")
    app.state.settings = settings
    app.state.hub = hub
    app.state.table = GameTable(registry, hub, scheduler, orchestrator, synthesizer)
    app.include_router(api_router, prefix="/api")
    app.include_router(socket_router)
    return app


# Default app instance for uvicorn (reads .env / environment)
app = create_app()
