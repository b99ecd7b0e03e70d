"""Server configuration, read from the environment (a .env file is honoured).

Scheduler limits are module constants; everything an operator may want to
change per deployment lives on Settings.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field

ROOT = Path(__file__).parent.parent

NarratorMode = Literal["ai", "offline"]

DEFAULT_TURN_SEC = 600
MIN_TURN_SEC = 10
MAX_START_TURN_SEC = 3600
MAX_SETTINGS_TURN_SEC = 600
MAX_AUTO_DELAY_SEC = 10
DEFAULT_AUTO_DELAY_SEC = 1


class Settings(BaseModel):
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com"
    openai_org: str = ""
    openai_project: str = ""
    model: str = "gpt-4o-mini"
    fallback_models: list[str] = Field(default_factory=lambda: ["gpt-4o-mini", "gpt-4o"])
    narrator_mode: NarratorMode = "ai"
    rate_limit_ms: int = Field(default=1500, ge=0)
    max_tokens: int = Field(default=900, gt=0)
    temperature: float = 0.8
    history_limit: int = Field(default=40, gt=0)
    history_trim: int = Field(default=10, gt=0)
    synthesis_delay_ms: int = Field(default=1600, ge=0)
    host: str = "0.0.0.0"
    port: int = 3000

    @property
    def offline(self) -> bool:
        """True when no room may reach the provider (global default or no key)."""
        return self.narrator_mode == "offline" or not self.openai_api_key

    def model_candidates(self) -> list[str]:
        """Primary model followed by the fallbacks, blanks and repeats removed."""
        seen: list[str] = []
        for name in [self.model, *self.fallback_models]:
            name = name.strip()
            if name and name not in seen:
                seen.append(name)
        return seen


def _parse_mode(raw: str) -> NarratorMode:
    return "offline" if raw.strip().lower() in ("mock", "offline", "local") else "ai"


def _parse_list(raw: str | None, default: list[str]) -> list[str]:
    if raw is None:
        return list(default)
    return [part.strip() for part in raw.split(",") if part.strip()]


def load_settings(env_file: Path | None = None) -> Settings:
    """Load .env (if present) and build Settings from environment variables."""
    load_dotenv(env_file or ROOT / ".env")
    defaults = Settings()
    return Settings(
        openai_api_key=os.getenv("OPENAI_API_KEY", ""),
        openai_base_url=os.getenv("OPENAI_BASE_URL", defaults.openai_base_url),
        openai_org=os.getenv("OPENAI_ORG", ""),
        openai_project=os.getenv("OPENAI_PROJECT", ""),
        model=os.getenv("MODEL", defaults.model),
        fallback_models=_parse_list(os.getenv("FALLBACK_MODELS"), defaults.fallback_models),
        narrator_mode=_parse_mode(os.getenv("DM_MODE", "openai")),
        rate_limit_ms=int(os.getenv("RATE_LIMIT_MS", str(defaults.rate_limit_ms))),
        max_tokens=int(os.getenv("MAX_TOKENS", str(defaults.max_tokens))),
        history_limit=int(os.getenv("HISTORY_LIMIT", str(defaults.history_limit))),
        history_trim=int(os.getenv("HISTORY_TRIM", str(defaults.history_trim))),
        synthesis_delay_ms=int(os.getenv("SYNTHESIS_DELAY_MS", str(defaults.synthesis_delay_ms))),
        host=os.getenv("HOST", defaults.host),
        port=int(os.getenv("PORT", str(defaults.port))),
    )
