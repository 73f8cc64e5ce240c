"""End-of-session archival: summarise, persist, reset, refresh the digest.

Summarising costs one request like any other generation. The persisted
summary is the only durable side effect; if that write fails the in-memory
reset still happens and the failure is reported through ArchiveResult.saved.
"""

import logging

from pydantic import BaseModel

from aethelgard.archives import NarrativeStore
from aethelgard.engine.budget import BudgetLedger
from aethelgard.engine.context import SessionContext
from aethelgard.engine.state import BudgetUpdated, SessionReset, TurnAborted, TurnStarted
from aethelgard.engine.teller import StoryTeller
from aethelgard.errors import TurnFailed
from aethelgard.llm import LLMError
from aethelgard.models import StorySegment
from aethelgard.prompts import PromptError

logger = logging.getLogger(__name__)

END_OF_ADVENTURE = "End of the adventure"


class ArchiveResult(BaseModel):
    character_name: str
    summary: str
    saved: bool


def transcript(history: list[StorySegment]) -> list[dict[str, str]]:
    return [{"text": seg.text, "choice": seg.user_choice or END_OF_ADVENTURE} for seg in history]


async def end_session(
    ctx: SessionContext,
    teller: StoryTeller,
    ledger: BudgetLedger,
    store: NarrativeStore,
    continue_character: bool = True,
) -> ArchiveResult | None:
    """Archive the current story. Returns None when there is nothing to archive."""
    state = ctx.state
    if not state.history:
        return None

    name = state.character_name
    user_id = ctx.user_id
    epoch = ctx.epoch
    ctx.apply(TurnStarted())
    try:
        summary = await teller.summarize(transcript(state.history))
    except (LLMError, PromptError) as e:
        logger.warning("summary failed for %s: %s", name, e)
        if ctx.epoch == epoch:
            ctx.apply(TurnAborted())
        raise TurnFailed("The chronicle could not be written. Try again.") from e
    except BaseException:
        if ctx.epoch == epoch:
            ctx.apply(TurnAborted())
        raise

    if user_id is not None:
        remaining = ledger.decrement(user_id)
        if ctx.epoch == epoch:
            ctx.apply(BudgetUpdated(remaining=remaining))

    saved = store.save_summary(name, summary)
    if ctx.epoch != epoch:
        # logged out while summarising: the story is archived, the new session is left alone
        logger.info("archived %s after logout; session state untouched", name)
        return ArchiveResult(character_name=name, summary=summary, saved=saved)
    ctx.apply(SessionReset(keep_character=continue_character))
    ctx.archives = store.fetch_archive_digest()
    return ArchiveResult(character_name=name, summary=summary, saved=saved)
