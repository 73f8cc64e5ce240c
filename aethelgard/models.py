"""Core domain models.

The turn engine, the budget ledger and the storage layer all operate on these
types. Pydantic is used for validation and serialisation at every data
boundary; AdventureResponse in particular is the strict record the narrative
backend must produce before anything is folded into game state.
"""

from __future__ import annotations

import time
import uuid
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

SessionView = Literal["landing", "checking_limits", "game", "campsite"]

ChatRole = Literal["user", "model"]

DEFAULT_QUEST = "Begin your journey."


def new_segment_id() -> str:
    """Time-derived id; the random suffix separates ids minted in the same tick."""
    return f"{time.time_ns()}-{uuid.uuid4().hex[:8]}"


class StorySegment(BaseModel):
    """One narrative step. `user_choice` is filled in once the player picks an option."""

    id: str = Field(default_factory=new_segment_id)
    text: str
    image_prompt: str
    options: list[str]
    image_url: str | None = None
    user_choice: str | None = None


class InventoryUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    add: list[str] = Field(default_factory=list)
    remove: list[str] = Field(default_factory=list)

    @field_validator("add", "remove", mode="before")
    @classmethod
    def _null_is_empty(cls, v):
        return [] if v is None else v


class AdventureResponse(BaseModel):
    """What the narrative backend returns for one turn.

    Wire names follow the backend's camelCase contract; snake_case is accepted
    too so tests and callers can build instances directly.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    text: str = Field(min_length=1)
    options: list[str] = Field(min_length=3, max_length=4)
    image_prompt: str = Field(alias="imagePrompt")
    inventory_update: InventoryUpdate = Field(alias="inventoryUpdate")
    quest_update: str | None = Field(default=None, alias="questUpdate")


class GameState(BaseModel):
    """Session-scoped game state. Replaced wholesale by engine.state.reduce()."""

    history: list[StorySegment] = Field(default_factory=list)
    inventory: list[str] = Field(default_factory=list)
    quest: str = DEFAULT_QUEST
    is_loading: bool = False
    character_name: str = ""
    remaining_requests: int = Field(default=5, ge=0)
    next_reset_time: str | None = None  # ISO timestamp the current window began


class UserLimit(BaseModel):
    """Per-user request budget record."""

    request_count: int = Field(ge=0)
    last_reset_at: str


class ArchiveEntry(BaseModel):
    """A persisted end-of-session summary."""

    player_name: str
    summary: str
    created_at: str


class ChatMessage(BaseModel):
    id: str = Field(default_factory=new_segment_id)
    role: ChatRole
    text: str


class Countdown(BaseModel):
    """Time left until the budget window reopens, floored at zero."""

    hours: int = 0
    minutes: int = 0
    seconds: int = 0
    ready: bool = False
