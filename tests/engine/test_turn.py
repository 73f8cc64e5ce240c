"""Tests for TurnEngine.advance_turn."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from aethelgard.engine import StoryTeller, TurnEngine
from aethelgard.engine.state import SessionReset
from aethelgard.engine.turn import context_window
from aethelgard.errors import BudgetExhausted, TurnFailed
from aethelgard.llm import HttpImageGenerator, HttpLLM, LLMError

from conftest import FixedRandom, StubImages, StubLLM, adventure_json, segment


def _json_response(body: object) -> MagicMock:
    resp = MagicMock()
    resp.status_code = 200
    resp.json.return_value = body
    resp.raise_for_status = MagicMock()
    return resp


# ── context_window ───────────────────────────────────────────


def test_context_window_uses_last_segments():
    history = [segment(f"s{i}", choice=f"c{i}") for i in range(8)] + [segment("open")]
    window = context_window(history, "now", size=5)
    assert [w["text"] for w in window] == ["s4", "s5", "s6", "s7", "open"]
    assert window[-1]["choice"] == "now"
    assert window[0]["choice"] == "c4"


def test_context_window_empty():
    assert context_window([], "Begin") == []


# ── happy path ───────────────────────────────────────────────


async def test_turn_appends_segment_and_spends_budget(make_ctx, make_engine, set_budget, storage):
    set_budget("u1", 5)
    engine, _ = make_engine(StubLLM(adventure_json()), draw=0.0)
    ctx = make_ctx(history=[segment("Gate.", image=True)], remaining_requests=5)

    new = await engine.advance_turn(ctx, "Knock")

    assert ctx.state.history[-1] == new
    assert ctx.state.history[0].user_choice == "Knock"
    assert new.user_choice is None
    assert ctx.state.remaining_requests == 4
    assert storage.get_limit_record("u1").request_count == 4
    assert not ctx.state.is_loading


async def test_opening_turn_is_illustrated(make_ctx, make_engine, set_budget, images):
    set_budget("u1", 5)
    engine, _ = make_engine(StubLLM(adventure_json()), draw=0.999)
    ctx = make_ctx(remaining_requests=5)

    new = await engine.advance_turn(ctx, "Begin the adventure")

    assert new.image_url == images.result
    assert len(images.prompts) == 1
    assert ctx.state.remaining_requests == 4


async def test_high_draw_skips_image(make_ctx, make_engine, set_budget, images):
    set_budget("u1", 5)
    engine, _ = make_engine(StubLLM(adventure_json()), draw=0.99)
    ctx = make_ctx(history=[segment(image=True)], remaining_requests=5)

    new = await engine.advance_turn(ctx, "Wait")

    assert new.image_url is None
    assert images.prompts == []


async def test_force_image(make_ctx, make_engine, set_budget, images):
    set_budget("u1", 5)
    engine, _ = make_engine(StubLLM(adventure_json()), draw=0.99)
    ctx = make_ctx(history=[segment(image=True)], remaining_requests=5)

    new = await engine.advance_turn(ctx, "Look closer", force_image=True)

    assert new.image_url == images.result


async def test_inventory_and_quest_applied(make_ctx, make_engine, set_budget):
    set_budget("u1", 5)
    llm = StubLLM(adventure_json(
        inventoryUpdate={"add": ["rusty key"], "remove": ["torch"]},
        questUpdate="Open the vault",
    ))
    engine, _ = make_engine(llm)
    ctx = make_ctx(history=[segment()], inventory=["torch", "rope"])

    await engine.advance_turn(ctx, "Search")

    assert ctx.state.inventory == ["rope", "rusty key"]
    assert ctx.state.quest == "Open the vault"


async def test_narrator_sees_bounded_history(make_ctx, make_engine, set_budget):
    set_budget("u1", 5)
    llm = StubLLM(adventure_json())
    engine, _ = make_engine(llm)
    history = [segment(f"scene-{i}", choice=f"pick-{i}") for i in range(9)] + [segment("scene-open")]
    ctx = make_ctx(history=history)

    await engine.advance_turn(ctx, "Onward")

    prompt = llm.calls[0][1]
    assert "scene-4" not in prompt
    assert "scene-5" in prompt
    assert "Player choice: Onward" in prompt


async def test_anonymous_turn_spends_nothing(make_ctx, make_engine, storage):
    engine, _ = make_engine(StubLLM(adventure_json()))
    ctx = make_ctx(user_id=None, remaining_requests=5)

    await engine.advance_turn(ctx, "Begin")

    assert ctx.state.remaining_requests == 5
    assert storage.get_limit_record("u1") is None


# ── failure paths ────────────────────────────────────────────


async def test_narrator_failure_leaves_state_intact(make_ctx, make_engine, set_budget, storage, backend_down):
    set_budget("u1", 5)
    engine, _ = make_engine(StubLLM(backend_down))
    ctx = make_ctx(history=[segment("Gate.")], inventory=["torch"], remaining_requests=5)
    before = ctx.state.model_copy(deep=True)

    with pytest.raises(TurnFailed) as exc:
        await engine.advance_turn(ctx, "Knock")

    assert exc.value.pending_choice == "Knock"
    assert ctx.state == before
    assert ctx.state.history[-1].user_choice is None
    assert storage.get_limit_record("u1").request_count == 5


async def test_malformed_response_fails_turn(make_ctx, make_engine, set_budget):
    set_budget("u1", 5)
    engine, _ = make_engine(StubLLM(adventure_json(options=["one", "two"])))
    ctx = make_ctx(history=[segment()])

    with pytest.raises(TurnFailed):
        await engine.advance_turn(ctx, "Go")
    assert len(ctx.state.history) == 1
    assert not ctx.state.is_loading


async def test_retry_after_failure_succeeds(make_ctx, make_engine, set_budget, backend_down):
    set_budget("u1", 5)
    engine, _ = make_engine(StubLLM(backend_down, adventure_json()))
    ctx = make_ctx(history=[segment()], remaining_requests=5)

    with pytest.raises(TurnFailed) as exc:
        await engine.advance_turn(ctx, "Go")
    await engine.advance_turn(ctx, exc.value.pending_choice)

    assert len(ctx.state.history) == 2
    assert ctx.state.history[0].user_choice == "Go"
    assert ctx.state.remaining_requests == 4


async def test_image_failure_keeps_text_segment(make_ctx, make_engine, set_budget):
    set_budget("u1", 5)
    broken = StubImages(LLMError("Backend returned HTTP 500"))
    engine, _ = make_engine(StubLLM(adventure_json()), image_gen=broken)
    ctx = make_ctx(remaining_requests=5)

    new = await engine.advance_turn(ctx, "Begin")

    assert new.image_url is None
    assert len(ctx.state.history) == 1
    assert ctx.state.remaining_requests == 4


# ── guards ───────────────────────────────────────────────────


async def test_exhausted_budget_blocks_turn(make_ctx, make_engine, set_budget):
    set_budget("u1", 0)
    llm = StubLLM()
    engine, _ = make_engine(llm)
    ctx = make_ctx(history=[segment()], remaining_requests=0)

    with pytest.raises(BudgetExhausted):
        await engine.advance_turn(ctx, "Go")
    assert llm.calls == []
    assert len(ctx.state.history) == 1


async def test_turn_in_flight_is_skipped(make_ctx, make_engine):
    llm = StubLLM()
    engine, _ = make_engine(llm)
    ctx = make_ctx(history=[segment()], is_loading=True)

    assert await engine.advance_turn(ctx, "Go") is None
    assert llm.calls == []


async def test_concurrent_turns_only_one_runs(make_ctx, make_engine, set_budget):
    set_budget("u1", 5)
    gate = asyncio.Event()

    class SlowLLM:
        calls = 0

        async def __call__(self, stage, prompt):
            SlowLLM.calls += 1
            await gate.wait()
            return adventure_json()

    engine, _ = make_engine(SlowLLM())
    ctx = make_ctx(history=[segment()], remaining_requests=5)

    first = asyncio.create_task(engine.advance_turn(ctx, "A"))
    await asyncio.sleep(0)
    second = await engine.advance_turn(ctx, "B")
    gate.set()
    await first

    assert second is None
    assert SlowLLM.calls == 1
    assert len(ctx.state.history) == 2
    assert ctx.state.history[0].user_choice == "A"
    assert ctx.state.remaining_requests == 4


async def test_image_transport_error_keeps_text_segment(make_ctx, ledger, set_budget, storage):
    set_budget("u1", 5)
    teller = StoryTeller(StubLLM(adventure_json()), HttpImageGenerator("http://localhost:7860"))
    engine = TurnEngine(teller, ledger, rng=FixedRandom(0.5))
    ctx = make_ctx(remaining_requests=5)

    with patch("httpx.AsyncClient.post", AsyncMock(side_effect=httpx.ReadError("connection reset"))):
        new = await engine.advance_turn(ctx, "Begin")

    assert new.image_url is None
    assert len(ctx.state.history) == 1
    assert not ctx.state.is_loading
    assert storage.get_limit_record("u1").request_count == 4


async def test_malformed_backend_body_fails_turn_and_recovers(make_ctx, ledger, set_budget, storage):
    set_budget("u1", 5)
    llm = HttpLLM("http://localhost:5001")
    engine = TurnEngine(StoryTeller(llm), ledger, rng=FixedRandom(0.99))
    ctx = make_ctx(history=[segment(image=True)], remaining_requests=5)
    mock_post = AsyncMock(side_effect=[
        _json_response([1]),
        _json_response({"results": [{"text": adventure_json()}]}),
    ])

    with patch("httpx.AsyncClient.post", mock_post):
        with pytest.raises(TurnFailed) as exc:
            await engine.advance_turn(ctx, "Go")
        assert not ctx.state.is_loading
        assert storage.get_limit_record("u1").request_count == 5

        new = await engine.advance_turn(ctx, exc.value.pending_choice)

    assert new is not None
    assert len(ctx.state.history) == 2
    assert ctx.state.history[0].user_choice == "Go"


async def test_unexpected_error_clears_loading(make_ctx, make_engine, set_budget):
    set_budget("u1", 5)
    engine, _ = make_engine(StubLLM(RuntimeError("bug in backend adapter")))
    ctx = make_ctx(history=[segment()])

    with pytest.raises(RuntimeError):
        await engine.advance_turn(ctx, "Go")

    assert not ctx.state.is_loading
    assert len(ctx.state.history) == 1


async def test_only_last_segment_is_open_after_many_turns(make_ctx, make_engine, set_budget):
    set_budget("u1", 10)
    choices = ["Enter the keep", "Climb the stairs", "Open the chest", "Read the letter"]
    engine, _ = make_engine(StubLLM(*(adventure_json(text=f"Scene {i}.") for i in range(5))))
    ctx = make_ctx(remaining_requests=10)

    await engine.advance_turn(ctx, "Begin the adventure")
    for choice in choices:
        await engine.advance_turn(ctx, choice)

    history = ctx.state.history
    assert len(history) == 5
    assert [s.user_choice for s in history[:-1]] == choices
    assert history[-1].user_choice is None
    assert ctx.state.remaining_requests == 5


async def test_logout_during_turn_drops_result(make_ctx, make_engine, set_budget, storage):
    set_budget("u1", 5)
    gate = asyncio.Event()

    class GatedLLM:
        async def __call__(self, stage, prompt):
            await gate.wait()
            return adventure_json()

    engine, _ = make_engine(GatedLLM())
    ctx = make_ctx(history=[segment()], remaining_requests=5)

    pending = asyncio.create_task(engine.advance_turn(ctx, "Go"))
    await asyncio.sleep(0)
    ctx.epoch += 1
    ctx.apply(SessionReset(keep_character=False))
    ctx.user_id = None
    gate.set()

    assert await pending is None
    assert ctx.state.history == []
    assert not ctx.state.is_loading
    assert ctx.state.remaining_requests == 5
    assert storage.get_limit_record("u1").request_count == 4
