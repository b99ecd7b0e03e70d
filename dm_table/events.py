"""Pydantic payload models for inbound table events."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class JoinBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    room_id: str = Field(default="", alias="roomId")
    name: str = ""


class ChatBody(BaseModel):
    text: str
    dm: bool = False


class RollBody(BaseModel):
    notation: str = "1d20+0"


class AnnounceBody(BaseModel):
    text: str = ""


class CharacterBody(BaseModel):
    sheet: dict[str, Any]


class ClearBody(BaseModel):
    by: str = ""
