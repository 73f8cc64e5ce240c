"""The per-session container owned by a SessionRouter."""

from __future__ import annotations

from dataclasses import dataclass, field

from aethelgard.engine.state import Event, reduce
from aethelgard.models import GameState, SessionView


@dataclass
class SessionContext:
    user_id: str | None = None
    state: GameState = field(default_factory=GameState)
    view: SessionView = "landing"
    entered: bool = False  # landing → checking_limits has fired for this login
    epoch: int = 0  # bumped on logout; work started in an older epoch is discarded
    lore: str | None = None
    archives: str = ""

    def apply(self, event: Event) -> GameState:
        self.state = reduce(self.state, event)
        return self.state
