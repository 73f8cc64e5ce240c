"""Session endpoints: character choice, turns, rest, wake-up, finish, logout, chat.

Every endpoint acts on the caller's SessionRouter (X-User-Id header) and
returns the session snapshot afterwards, so the client can always re-render
from the response alone.
"""

from fastapi import APIRouter, Depends, HTTPException, Request

from aethelgard.engine import SessionRouter
from aethelgard.errors import BudgetExhausted, InvalidTransition, TurnFailed
from aethelgard.models import ChatMessage

from .deps import get_session, require_user
from .models import ChatBody, ChoiceBody, ChooseCharacter, FinishBody, RestBody, SessionSnapshot

router = APIRouter(prefix="/session")


def snapshot(session: SessionRouter) -> SessionSnapshot:
    return SessionSnapshot(
        view=session.view,
        state=session.state,
        budget_warning=session.budget_warning,
        countdown=session.countdown() if session.view == "campsite" else None,
    )


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, BudgetExhausted):
        return HTTPException(429, str(e))
    if isinstance(e, InvalidTransition):
        return HTTPException(409, str(e))
    if isinstance(e, TurnFailed):
        return HTTPException(502, {"message": str(e), "pending_choice": e.pending_choice})
    return HTTPException(500, str(e))


@router.get("")
async def get_session_snapshot(session: SessionRouter = Depends(get_session)) -> SessionSnapshot:
    """Current view, game state and (at the campsite) the countdown."""
    return snapshot(session)


@router.post("/character")
async def choose_character(body: ChooseCharacter, session: SessionRouter = Depends(get_session)) -> SessionSnapshot:
    """Pick the character to play; enters the game or the campsite."""
    try:
        await session.choose_character(body.name)
    except (InvalidTransition, TurnFailed) as e:
        raise _http_error(e)
    return snapshot(session)


@router.post("/choice")
async def make_choice(body: ChoiceBody, session: SessionRouter = Depends(get_session)) -> SessionSnapshot:
    """Advance the story with the player's choice."""
    try:
        await session.choose(body.choice, force_image=body.force_image)
    except (BudgetExhausted, InvalidTransition, TurnFailed) as e:
        raise _http_error(e)
    return snapshot(session)


@router.post("/rest")
async def long_rest(body: RestBody, session: SessionRouter = Depends(get_session)) -> SessionSnapshot:
    """Go to the campsite, optionally archiving the story first."""
    try:
        await session.long_rest(save=body.save)
    except (InvalidTransition, TurnFailed) as e:
        raise _http_error(e)
    return snapshot(session)


@router.post("/wake")
async def wake_up(session: SessionRouter = Depends(get_session)) -> SessionSnapshot:
    """Leave the campsite if the budget window has reopened."""
    try:
        await session.wake_up()
    except (InvalidTransition, TurnFailed) as e:
        raise _http_error(e)
    return snapshot(session)


@router.post("/reward")
async def watch_ad(session: SessionRouter = Depends(get_session)) -> SessionSnapshot:
    """Ad watched: refill the budget and leave the campsite."""
    try:
        await session.watch_ad()
    except (InvalidTransition, TurnFailed) as e:
        raise _http_error(e)
    return snapshot(session)


@router.post("/finish")
async def save_and_finish(body: FinishBody, session: SessionRouter = Depends(get_session)) -> dict:
    """Archive the story and return to the landing view."""
    try:
        result = await session.save_and_finish(continue_character=body.continue_character)
    except (InvalidTransition, TurnFailed) as e:
        raise _http_error(e)
    return {"archive": result, "session": snapshot(session)}


@router.post("/logout")
async def logout(request: Request, user_id: str = Depends(require_user)) -> dict:
    """Forget the user's session."""
    await request.app.state.registry.drop(user_id)
    return {"ok": True}


@router.post("/chat")
async def chat(body: ChatBody, session: SessionRouter = Depends(get_session)) -> ChatMessage:
    """Ask the oracle. Costs one request."""
    try:
        return await session.chat(body.history, body.message)
    except (InvalidTransition, TurnFailed) as e:
        raise _http_error(e)
