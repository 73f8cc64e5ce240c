"""Pydantic request/response models for API endpoints."""

from pydantic import BaseModel, Field

from aethelgard.models import ChatMessage, Countdown, GameState, SessionView


class ChooseCharacter(BaseModel):
    name: str = Field(min_length=1)


class ChoiceBody(BaseModel):
    choice: str = Field(min_length=1)
    force_image: bool = False


class RestBody(BaseModel):
    save: bool = False


class FinishBody(BaseModel):
    continue_character: bool = True


class ChatBody(BaseModel):
    message: str = Field(min_length=1)
    history: list[ChatMessage] = Field(default_factory=list)


class SessionSnapshot(BaseModel):
    view: SessionView
    state: GameState
    budget_warning: bool
    countdown: Countdown | None = None
