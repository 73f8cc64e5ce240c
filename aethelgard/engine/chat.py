"""Oracle chat. Not part of the story, but each answer costs one request."""

import logging

from aethelgard.engine.budget import BudgetLedger
from aethelgard.engine.context import SessionContext
from aethelgard.engine.state import BudgetUpdated
from aethelgard.engine.teller import StoryTeller
from aethelgard.errors import TurnFailed
from aethelgard.llm import LLMError
from aethelgard.models import ChatMessage
from aethelgard.prompts import PromptError

logger = logging.getLogger(__name__)


async def send_chat_message(
    ctx: SessionContext,
    teller: StoryTeller,
    ledger: BudgetLedger,
    history: list[ChatMessage],
    message: str,
) -> ChatMessage:
    user_id = ctx.user_id
    epoch = ctx.epoch
    try:
        text = await teller.chat(history, message, ctx.lore)
    except (LLMError, PromptError) as e:
        logger.warning("oracle chat failed: %s", e)
        raise TurnFailed("The oracle's voice is lost in the mist.", pending_choice=message) from e

    if user_id is not None:
        remaining = ledger.decrement(user_id)
        if ctx.epoch == epoch:
            ctx.apply(BudgetUpdated(remaining=remaining))
    return ChatMessage(role="model", text=text)
