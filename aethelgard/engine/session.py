"""Session router — the view state machine around the turn engine.

Views and transitions:

  landing ──(user + character)──▶ checking_limits
  checking_limits ──(count <= 0)──▶ campsite
  checking_limits ──(count > 0)───▶ game   (starts the story if history is empty)
  game ──(long rest)──────────────▶ campsite
  campsite ──(wake up / ad reward)▶ checking_limits
  game ──(save & finish / logout)─▶ landing

landing → checking_limits fires once per login (the `entered` latch); logout
clears the latch. Running out of requests mid-game only raises
budget_warning; the player can still save or rest.
"""

from __future__ import annotations

import logging

from aethelgard.archives import NarrativeStore
from aethelgard.engine.archive import ArchiveResult, end_session
from aethelgard.engine.budget import BudgetLedger
from aethelgard.engine.campsite import CampsiteTimer
from aethelgard.engine.chat import send_chat_message
from aethelgard.engine.context import SessionContext
from aethelgard.engine.state import BudgetUpdated, CharacterChosen, SessionReset, TurnStarted
from aethelgard.engine.teller import StoryTeller
from aethelgard.engine.turn import TurnEngine
from aethelgard.errors import InvalidTransition
from aethelgard.models import ChatMessage, Countdown, GameState, SessionView, StorySegment

logger = logging.getLogger(__name__)

BEGIN_CHOICE = "Begin the adventure"
RESUME_CHOICE = "Continue from the past: {summary}"


class SessionRouter:
    def __init__(
        self,
        engine: TurnEngine,
        teller: StoryTeller,
        ledger: BudgetLedger,
        store: NarrativeStore,
        timer: CampsiteTimer | None = None,
        ctx: SessionContext | None = None,
    ) -> None:
        self._engine = engine
        self._teller = teller
        self._ledger = ledger
        self._store = store
        self._timer = timer or CampsiteTimer(window=ledger.reset_window)
        self.ctx = ctx or SessionContext()

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def view(self) -> SessionView:
        return self.ctx.view

    @property
    def state(self) -> GameState:
        return self.ctx.state

    @property
    def budget_warning(self) -> bool:
        return self.ctx.view == "game" and self.ctx.state.remaining_requests <= 0

    def countdown(self) -> Countdown:
        if self._timer.running:
            return self._timer.current
        return self._timer.refresh()

    def _set_view(self, view: SessionView) -> None:
        previous = self.ctx.view
        if previous == view:
            return
        if previous == "campsite":
            self._timer.stop()
        if view == "campsite":
            self._timer.start(self.ctx.state.next_reset_time)
        self.ctx.view = view
        logger.info("user=%s view %s -> %s", self.ctx.user_id, previous, view)

    def _require(self, *views: SessionView) -> None:
        if self.ctx.view not in views:
            raise InvalidTransition(f"Not available while in {self.ctx.view}")

    # ------------------------------------------------------------------
    # Entry
    # ------------------------------------------------------------------

    def refresh_world(self) -> None:
        """Load lore and the archive digest into the session cache."""
        self.ctx.lore = self._store.fetch_lore()
        self.ctx.archives = self._store.fetch_archive_digest()

    async def authenticate(self, user_id: str | None) -> SessionView:
        if user_id is None:
            await self.logout()
            return self.ctx.view
        if self.ctx.user_id not in (None, user_id):
            await self.logout()
        self.ctx.user_id = user_id
        await self._maybe_enter()
        return self.ctx.view

    async def choose_character(self, name: str) -> SessionView:
        name = name.strip()
        if not name:
            raise InvalidTransition("A character needs a name")
        if self.ctx.state.character_name != name:
            self._require("landing")
            self.ctx.apply(CharacterChosen(name=name))
        await self._maybe_enter()
        return self.ctx.view

    async def _maybe_enter(self) -> None:
        ctx = self.ctx
        if ctx.entered or ctx.view != "landing":
            return
        if not ctx.user_id or not ctx.state.character_name:
            return
        ctx.entered = True
        await self.check_limits()

    async def check_limits(self) -> SessionView:
        """Refresh the budget and route to game or campsite."""
        ctx = self.ctx
        if ctx.user_id is None:
            return ctx.view
        self._set_view("checking_limits")
        limits = self._ledger.get_limits(ctx.user_id)
        ctx.apply(BudgetUpdated(remaining=limits.request_count, reset_at=limits.last_reset_at))

        if limits.request_count <= 0:
            self._set_view("campsite")
            return ctx.view

        self._set_view("game")
        if not ctx.state.history and not ctx.state.is_loading:
            await self.start_adventure()
        return ctx.view

    async def start_adventure(self) -> StorySegment | None:
        """Open the story, resuming from the character's last archived summary if any."""
        self._require("game")
        ctx = self.ctx
        if ctx.state.history:
            raise InvalidTransition("The adventure has already begun")
        if ctx.state.is_loading:
            return None

        ctx.apply(TurnStarted())
        summary = self._store.fetch_last_summary(ctx.state.character_name)
        choice = RESUME_CHOICE.format(summary=summary) if summary else BEGIN_CHOICE
        return await self._engine.advance_turn(ctx, choice, resume_context=summary, initial=True)

    # ------------------------------------------------------------------
    # Game
    # ------------------------------------------------------------------

    async def choose(self, choice: str, force_image: bool = False) -> StorySegment | None:
        self._require("game")
        if not self.ctx.state.history:
            return await self.start_adventure()
        return await self._engine.advance_turn(self.ctx, choice, force_image=force_image)

    async def chat(self, history: list[ChatMessage], message: str) -> ChatMessage:
        self._require("game", "campsite")
        return await send_chat_message(self.ctx, self._teller, self._ledger, history, message)

    async def end_session(self, continue_character: bool = True) -> ArchiveResult | None:
        self._require("game")
        if self.ctx.state.is_loading:
            raise InvalidTransition("A turn is still in progress")
        return await end_session(
            self.ctx, self._teller, self._ledger, self._store, continue_character
        )

    async def long_rest(self, save: bool = False) -> ArchiveResult | None:
        self._require("game")
        result = await self.end_session() if save else None
        self._set_view("campsite")
        return result

    async def save_and_finish(self, continue_character: bool = True) -> ArchiveResult | None:
        result = await self.end_session(continue_character)
        if result is None:
            # nothing to archive, but the character choice still applies
            self.ctx.apply(SessionReset(keep_character=continue_character))
        self._leave_to_landing()
        return result

    # ------------------------------------------------------------------
    # Campsite
    # ------------------------------------------------------------------

    async def wake_up(self) -> SessionView:
        self._require("campsite")
        return await self.check_limits()

    async def watch_ad(self) -> SessionView:
        self._require("campsite")
        if self.ctx.user_id is not None:
            self.ctx.apply(BudgetUpdated(remaining=self._ledger.grant_reward(self.ctx.user_id)))
        return await self.check_limits()

    # ------------------------------------------------------------------
    # Exit
    # ------------------------------------------------------------------

    def _leave_to_landing(self) -> None:
        self._set_view("landing")
        self.ctx.entered = False

    async def logout(self) -> None:
        self.ctx.epoch += 1
        self.ctx.apply(SessionReset(keep_character=False))
        self.ctx.user_id = None
        self._leave_to_landing()
