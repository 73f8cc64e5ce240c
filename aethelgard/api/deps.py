"""Service wiring and per-user session registry for the API layer."""

import logging
from dataclasses import dataclass, field

from fastapi import Header, HTTPException, Request

from aethelgard.archives import NarrativeStore
from aethelgard.config import Settings
from aethelgard.engine import BudgetLedger, SessionRouter, StoryTeller, TurnEngine
from aethelgard.errors import SetupError
from aethelgard.llm import LLM, HttpImageGenerator, HttpLLM, ImageGenerator
from aethelgard.storage import Storage

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    storage: Storage
    store: NarrativeStore
    ledger: BudgetLedger
    teller: StoryTeller
    missing: list[str] = field(default_factory=list)

    def check(self) -> None:
        if self.missing:
            raise SetupError(self.missing)

    def new_router(self) -> SessionRouter:
        engine = TurnEngine(self.teller, self.ledger, context_size=self.settings.context_window)
        return SessionRouter(engine, self.teller, self.ledger, self.store)


def build_services(
    settings: Settings,
    llm: LLM | None = None,
    images: ImageGenerator | None = None,
) -> Services:
    storage = Storage(settings.data_dir)
    store = NarrativeStore(storage, digest_limit=settings.archive_limit)
    ledger = BudgetLedger(
        storage,
        default_budget=settings.default_budget,
        reset_window=settings.reset_window,
        reward_grant=settings.reward_grant,
    )
    missing = [] if llm is not None else settings.missing_credentials()
    if llm is None and not missing:
        llm = HttpLLM(
            settings.llm_provider_url,
            api_key=settings.llm_api_key,
            provider_format=settings.llm_provider_format,
            model=settings.llm_model,
            timeout=settings.llm_timeout,
        )
    if images is None and settings.image_provider_url:
        images = HttpImageGenerator(
            settings.image_provider_url,
            api_key=settings.image_api_key,
            model=settings.image_model,
            timeout=settings.llm_timeout,
        )
    if missing:
        logger.error("cannot generate stories, missing configuration: %s", ", ".join(missing))
    elif images is None:
        logger.warning("IMAGE_PROVIDER_URL not set; every segment will be text-only")
    # with missing credentials the teller is never reached: require_configured() blocks first
    teller = StoryTeller(llm, images)  # type: ignore[arg-type]
    return Services(settings, storage, store, ledger, teller, missing)


class SessionRegistry:
    """One SessionRouter per authenticated user id, kept in memory."""

    def __init__(self, services: Services) -> None:
        self._services = services
        self._sessions: dict[str, SessionRouter] = {}

    async def get(self, user_id: str) -> SessionRouter:
        router = self._sessions.get(user_id)
        if router is None:
            router = self._services.new_router()
            router.refresh_world()
            self._sessions[user_id] = router
        await router.authenticate(user_id)
        return router

    async def drop(self, user_id: str) -> None:
        router = self._sessions.pop(user_id, None)
        if router is not None:
            await router.logout()


def services(request: Request) -> Services:
    return request.app.state.services


def require_configured(request: Request) -> None:
    try:
        services(request).check()
    except SetupError as e:
        raise HTTPException(503, str(e))


def require_user(x_user_id: str | None = Header(default=None)) -> str:
    if not x_user_id:
        raise HTTPException(401, "Not signed in")
    return x_user_id


async def get_session(request: Request, x_user_id: str | None = Header(default=None)) -> SessionRouter:
    user_id = require_user(x_user_id)
    require_configured(request)
    return await request.app.state.registry.get(user_id)
