"""Pydantic request/response models for API endpoints."""

from typing import Any

from pydantic import BaseModel


class StartBody(BaseModel):
    gender: str = "male"
    name: str = ""


class CharacterBody(BaseModel):
    character_id: str | None = None


class SceneBody(BaseModel):
    scene_id: str


class ActionBody(BaseModel):
    text: str


class TurnResult(BaseModel):
    message: dict[str, Any] | None
    state: dict[str, Any]


class SaveInfo(BaseModel):
    exists: bool
    day: int | None = None
    saved_messages: int | None = None
