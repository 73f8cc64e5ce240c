"""Turn engine — advances the story by one segment.

Turn flow:
  1. Guards: one turn in flight at a time; no turns on an empty budget once
     the story has begun.
  2. Mark loading and build a bounded {text, choice} context window.
  3. Call the narrator. On failure clear loading and raise TurnFailed; no
     budget is spent and nothing is appended.
  4. Spend one request.
  5. Roll for an image against the pre-turn history; image failures are
     logged and the segment stays text-only.
  6. Reduce TurnSucceeded: close the previous segment with the choice, apply
     inventory and quest updates, append the new segment, clear loading.

The previous segment is closed only after the new one exists, so a failed
turn leaves the player's last options open for a retry. Any exception clears
the loading flag. If the session is logged out while a turn is generating
(SessionContext.epoch moved on), the request is still charged but the result
is dropped instead of landing in the next session.
"""

import logging
import random

from aethelgard.engine.budget import BudgetLedger
from aethelgard.engine.context import SessionContext
from aethelgard.engine.sampler import image_probability, should_generate_image
from aethelgard.engine.state import BudgetUpdated, TurnAborted, TurnStarted, TurnSucceeded
from aethelgard.engine.teller import StoryTeller
from aethelgard.errors import BudgetExhausted, TurnFailed
from aethelgard.llm import LLMError
from aethelgard.models import StorySegment
from aethelgard.prompts import PromptError

logger = logging.getLogger(__name__)

CONTEXT_WINDOW = 5


def context_window(history: list[StorySegment], choice: str, size: int = CONTEXT_WINDOW) -> list[dict[str, str]]:
    """Last `size` segments as {text, choice}; the open segment gets `choice`."""
    return [
        {"text": seg.text, "choice": seg.user_choice or choice}
        for seg in history[-size:]
    ]


class TurnEngine:
    def __init__(
        self,
        teller: StoryTeller,
        ledger: BudgetLedger,
        context_size: int = CONTEXT_WINDOW,
        rng: random.Random | None = None,
    ) -> None:
        self._teller = teller
        self._ledger = ledger
        self._context_size = context_size
        self._rng = rng or random.Random()

    async def advance_turn(
        self,
        ctx: SessionContext,
        choice: str,
        resume_context: str | None = None,
        force_image: bool = False,
        initial: bool = False,
    ) -> StorySegment | None:
        """Run one turn. Returns the new segment, or None if a turn is already running."""
        state = ctx.state
        if state.is_loading and not initial:
            logger.debug("turn skipped: already in flight")
            return None
        if state.remaining_requests <= 0 and state.history:
            raise BudgetExhausted()

        epoch = ctx.epoch
        ctx.apply(TurnStarted())
        try:
            return await self._play(ctx, epoch, choice, resume_context, force_image)
        except BaseException:
            # a turn that dies for any reason must not leave the session loading
            if ctx.epoch == epoch and ctx.state.is_loading:
                ctx.apply(TurnAborted())
            raise

    async def _play(
        self,
        ctx: SessionContext,
        epoch: int,
        choice: str,
        resume_context: str | None,
        force_image: bool,
    ) -> StorySegment | None:
        state = ctx.state
        user_id = ctx.user_id
        pre_history = state.history

        try:
            response = await self._teller.generate_step(
                context_window(pre_history, choice, self._context_size),
                state.inventory,
                state.quest,
                ctx.lore,
                ctx.archives,
                resume_context,
            )
        except (LLMError, PromptError) as e:
            logger.warning("turn failed for %s: %s", state.character_name or "?", e)
            raise TurnFailed("The threads of fate tangled. Try again.", pending_choice=choice) from e

        # charged to the user who started the turn, even if they have since logged out
        if user_id is not None:
            remaining = self._ledger.decrement(user_id)
            if ctx.epoch == epoch:
                ctx.apply(BudgetUpdated(remaining=remaining))

        image_url = None
        if should_generate_image(pre_history, self._rng, force=force_image):
            try:
                image_url = await self._teller.generate_image(response.image_prompt)
            except LLMError as e:
                logger.error("image generation failed: %s", e)
        else:
            logger.debug("no image this turn (p=%.2f)", image_probability(pre_history))

        if ctx.epoch != epoch:
            logger.info("turn discarded for user=%s: session ended while generating", user_id)
            return None

        segment = StorySegment(
            text=response.text,
            image_prompt=response.image_prompt,
            options=response.options,
            image_url=image_url,
        )
        ctx.apply(TurnSucceeded(
            choice=choice,
            segment=segment,
            inventory_update=response.inventory_update,
            quest_update=response.quest_update,
        ))
        return segment
