from fastapi import FastAPI

from aethelgard.api import router
from aethelgard.api.deps import SessionRegistry, build_services
from aethelgard.config import Settings, load_settings
from aethelgard.llm import LLM, ImageGenerator


def create_app(
    settings: Settings | None = None,
    llm: LLM | None = None,
    images: ImageGenerator | None = None,
) -> FastAPI:
    resolved = settings or load_settings()
    services = build_services(resolved, llm=llm, images=images)

    app = FastAPI(title="Aethelgard")
    app.state.services = services
    app.state.registry = SessionRegistry(services)
    app.include_router(router, prefix="/api")
    return app


# Default app instance for uvicorn (uses DATA_DIR and backend env vars)
app = create_app()
