"""Story teller — the narrative backend as seen by the engine.

Wraps an LLM callable and an optional image callable behind the four
operations the session needs: generate_step, generate_image, summarize and
chat. generate_step is the only one with structured output; it is parsed and
validated here so nothing partially populated ever reaches game state.
"""

from __future__ import annotations

import json
import logging

from pydantic import ValidationError

from aethelgard import prompts
from aethelgard.lore import SESSION_ARCHIVES, WORLD_LORE
from aethelgard.llm import LLM, ImageGenerator, LLMError, ResponseFormatError
from aethelgard.models import AdventureResponse, ChatMessage

logger = logging.getLogger(__name__)

SUMMARY_FALLBACK = "No summary could be produced."
ORACLE_FALLBACK = "The oracle stays silent."


def _require_text(output: object, stage: str) -> str:
    if not isinstance(output, str):
        raise ResponseFormatError(f"{stage} backend returned {type(output).__name__}, expected text")
    return output


def _strip_fences(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        lines = [l for l in lines[1:] if not l.strip().startswith("```")]
        cleaned = "\n".join(lines)
    return cleaned


def parse_adventure_response(output: str) -> AdventureResponse:
    """Parse narrator output into an AdventureResponse or raise ResponseFormatError."""
    try:
        data = json.loads(_strip_fences(output))
    except json.JSONDecodeError as e:
        raise ResponseFormatError(f"Narrator returned invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ResponseFormatError(
            f"Narrator output must be a JSON object, got {type(data).__name__}"
        )
    try:
        return AdventureResponse.model_validate(data)
    except ValidationError as e:
        raise ResponseFormatError(f"Narrator output failed validation: {e}") from e


class StoryTeller:
    def __init__(self, llm: LLM, images: ImageGenerator | None = None) -> None:
        self._llm = llm
        self._images = images

    async def generate_step(
        self,
        history: list[dict[str, str]],
        inventory: list[str],
        quest: str,
        lore: str | None,
        archives: str | None,
        resume_context: str | None = None,
    ) -> AdventureResponse:
        prompt = prompts.narrator_prompt(
            history,
            inventory,
            quest,
            lore or WORLD_LORE,
            archives or SESSION_ARCHIVES,
            resume_context,
        )
        output = await self._llm("narrator", prompt)
        return parse_adventure_response(_require_text(output, "narrator"))

    async def generate_image(self, prompt: str) -> str:
        if self._images is None:
            raise LLMError("No image backend configured")
        return await self._images(prompts.image_prompt(prompt))

    async def summarize(self, transcript: list[dict[str, str]]) -> str:
        output = await self._llm("summary", prompts.summary_prompt(transcript))
        return _require_text(output, "summary").strip() or SUMMARY_FALLBACK

    async def chat(self, history: list[ChatMessage], message: str, lore: str | None) -> str:
        prompt = prompts.oracle_prompt(
            [h.model_dump() for h in history], message, lore or WORLD_LORE
        )
        output = await self._llm("oracle", prompt)
        return _require_text(output, "oracle").strip() or ORACLE_FALLBACK
