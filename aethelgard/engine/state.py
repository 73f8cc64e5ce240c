"""GameState transitions.

Every change to a session's GameState goes through reduce(state, event),
which returns a new state and never mutates its input. The turn engine,
archive flow and session router only decide *which* event to apply.
"""

from __future__ import annotations

from pydantic import BaseModel

from aethelgard.models import GameState, InventoryUpdate, StorySegment


class TurnStarted(BaseModel):
    pass


class TurnSucceeded(BaseModel):
    choice: str
    segment: StorySegment
    inventory_update: InventoryUpdate
    quest_update: str | None = None


class TurnAborted(BaseModel):
    pass


class BudgetUpdated(BaseModel):
    remaining: int
    reset_at: str | None = None


class CharacterChosen(BaseModel):
    name: str


class SessionReset(BaseModel):
    keep_character: bool = True


Event = TurnStarted | TurnSucceeded | TurnAborted | BudgetUpdated | CharacterChosen | SessionReset


def apply_inventory(inventory: list[str], update: InventoryUpdate) -> list[str]:
    """Remove listed items, then add new ones that are not already held."""
    result = [item for item in inventory if item not in update.remove]
    for item in update.add:
        if item not in result:
            result.append(item)
    return result


def close_last_segment(history: list[StorySegment], choice: str) -> list[StorySegment]:
    if not history or history[-1].user_choice is not None:
        return list(history)
    closed = history[-1].model_copy(update={"user_choice": choice})
    return [*history[:-1], closed]


def reduce(state: GameState, event: Event) -> GameState:
    if isinstance(event, TurnStarted):
        return state.model_copy(update={"is_loading": True})

    if isinstance(event, TurnSucceeded):
        history = close_last_segment(state.history, event.choice)
        history.append(event.segment)
        return state.model_copy(update={
            "history": history,
            "inventory": apply_inventory(state.inventory, event.inventory_update),
            "quest": event.quest_update or state.quest,
            "is_loading": False,
        })

    if isinstance(event, TurnAborted):
        return state.model_copy(update={"is_loading": False})

    if isinstance(event, BudgetUpdated):
        update: dict = {"remaining_requests": max(event.remaining, 0)}
        if event.reset_at is not None:
            update["next_reset_time"] = event.reset_at
        return state.model_copy(update=update)

    if isinstance(event, CharacterChosen):
        return state.model_copy(update={"character_name": event.name})

    if isinstance(event, SessionReset):
        if not event.keep_character:
            return GameState()
        # the budget belongs to the user, not the story
        return GameState(
            character_name=state.character_name,
            remaining_requests=state.remaining_requests,
            next_reset_time=state.next_reset_time,
        )

    raise TypeError(f"Unknown event {type(event).__name__}")
