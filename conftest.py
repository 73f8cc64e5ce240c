import json
from datetime import datetime, timedelta, timezone

import pytest

from aethelgard.archives import NarrativeStore
from aethelgard.engine import BudgetLedger, SessionContext, SessionRouter, StoryTeller, TurnEngine
from aethelgard.llm import LLMError
from aethelgard.models import GameState, StorySegment, UserLimit
from aethelgard.storage import Storage

T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def adventure_json(**overrides) -> str:
    """A valid narrator response; keyword overrides replace top-level fields."""
    body = {
        "text": "Snow hisses against the walls of Blackwinter Keep.",
        "options": ["Enter the keep", "Follow the tracks", "Wait for nightfall"],
        "imagePrompt": "A snowbound fortress at dusk",
        "inventoryUpdate": {"add": [], "remove": []},
        "questUpdate": None,
    }
    body.update(overrides)
    return json.dumps(body)


def segment(text: str = "A scene.", image: bool = False, choice: str | None = None) -> StorySegment:
    return StorySegment(
        text=text,
        image_prompt="prompt",
        options=["a", "b", "c"],
        image_url="https://img.example/x.png" if image else None,
        user_choice=choice,
    )


class StubLLM:
    """Replays canned responses in order and records every (stage, prompt)."""

    def __init__(self, *responses: str | Exception) -> None:
        self.responses = list(responses)
        self.calls: list[tuple[str, str]] = []

    async def __call__(self, stage: str, prompt: str) -> str:
        self.calls.append((stage, prompt))
        if not self.responses:
            raise AssertionError(f"unexpected LLM call for stage {stage!r}")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class StubImages:
    def __init__(self, result: str | Exception = "https://img.example/scene.png") -> None:
        self.result = result
        self.prompts: list[str] = []

    async def __call__(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


class FixedRandom:
    """random.Random stand-in whose draw is always `value`."""

    def __init__(self, value: float) -> None:
        self.value = value

    def random(self) -> float:
        return self.value


class FakeClock:
    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def storage(tmp_path) -> Storage:
    return Storage(tmp_path / "data")


@pytest.fixture
def store(storage) -> NarrativeStore:
    return NarrativeStore(storage)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ledger(storage, clock) -> BudgetLedger:
    return BudgetLedger(storage, clock=clock)


@pytest.fixture
def images() -> StubImages:
    return StubImages()


@pytest.fixture
def set_budget(storage, clock):
    def _set(user_id: str, count: int, reset_at: datetime | None = None) -> None:
        storage.upsert_limit_record(
            user_id,
            UserLimit(request_count=count, last_reset_at=(reset_at or clock()).isoformat()),
        )
    return _set


@pytest.fixture
def make_ctx():
    def _make(user_id: str | None = "u1", **state) -> SessionContext:
        return SessionContext(user_id=user_id, state=GameState(**state), view="game")
    return _make


@pytest.fixture
def make_engine(ledger, images):
    def _make(llm: StubLLM, draw: float = 0.99, image_gen=None) -> tuple[TurnEngine, StoryTeller]:
        teller = StoryTeller(llm, image_gen or images)
        return TurnEngine(teller, ledger, rng=FixedRandom(draw)), teller
    return _make


@pytest.fixture
def make_router(ledger, store, images):
    def _make(llm: StubLLM, draw: float = 0.99) -> SessionRouter:
        teller = StoryTeller(llm, images)
        engine = TurnEngine(teller, ledger, rng=FixedRandom(draw))
        return SessionRouter(engine, teller, ledger, store)
    return _make


@pytest.fixture
def backend_down() -> LLMError:
    return LLMError("Cannot connect to backend at http://localhost:5001")
