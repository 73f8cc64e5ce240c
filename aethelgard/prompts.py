"""Handlebars prompt rendering for the narrator, summary and oracle stages.

Templates use triple-stash ({{{x}}}) for free text so lore and player input
reach the model unescaped.
"""

import json
from collections.abc import Callable
from typing import Any

import pybars

from aethelgard.lore import ART_STYLE, WORLD_NAME

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


def _helper_last(this, options, items, count):
    """{{#last array N}}...{{/last}} — iterate over the last N items."""
    result = []
    for item in list(items)[-int(count):]:
        result.extend(options["fn"](item))
    return result


_HELPERS: dict[str, Callable] = {
    "last": _helper_last,
}


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context, helpers=_HELPERS))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


# ── Templates ────────────────────────────────────────────

RESPONSE_SCHEMA = {
    "text": "narrative prose for this step, 100-150 words",
    "options": ["3 or 4 distinct, meaningful choices for the player"],
    "imagePrompt": "English description of scene, character and lighting for an illustration",
    "inventoryUpdate": {"add": ["items found"], "remove": ["items used or lost"]},
    "questUpdate": "new objective if the story changed it significantly, otherwise null",
}

NARRATOR_TEMPLATE = """\
You are the Dungeon Master of an endless adventure set in the world of {{world}}.
Guide the player strictly within the world rules (LORE) and past events (ARCHIVES) below.

=== LORE ===
{{{lore}}}

=== ARCHIVES ===
{{{archives}}}

RULES:
1. Write vivid, descriptive narration of 100-150 words.
2. Only use the geography of {{world}}. Do not invent continents or major cities.
3. Make subtle references to archived events.
4. Offer the player 3-4 different, meaningful options.
5. Manage the inventory: add items they find, remove items they use.
6. Update the quest only if the story changes significantly.
7. Write an English image prompt describing setting, character and light.

Current state:
- Inventory: {{{inventory}}}
- Quest: {{{quest}}}
{{#if resume}}
- Previously: {{{resume}}}
{{/if}}

{{#if history}}
Continue the story from the history below. Stay faithful to the lore.

{{#each history}}
Story: {{{text}}}
Player choice: {{{choice}}}
---
{{/each}}
{{else}}
{{#if resume}}
Continue this character's story from where the previous session left off.
{{else}}
Begin a new adventure. Start the player in a random region that fits the lore (North, South, East, West or Centre) and describe where they are.
{{/if}}
{{/if}}

Respond with a single JSON object shaped like this and nothing else:
{{{schema}}}
"""

SUMMARY_TEMPLATE = """\
Summarise the following game session in 2-3 short sentences.
Mention the important events, the cities visited and any major changes.
Write in the third person (e.g. "The player travelled to Solaris...").

SESSION HISTORY:
{{#each transcript}}
Event: {{{text}}}
Choice: {{{choice}}}
{{/each}}
"""

ORACLE_TEMPLATE = """\
You are the Oracle of the Realm in the world of {{world}}.
REFERENCE: {{{lore}}}
Your task: tell the player about the world, speak mysteriously and never break character.

{{#last history 20}}
{{#if is_user}}Player{{else}}Oracle{{/if}}: {{{text}}}
{{/last}}
Player: {{{message}}}
Oracle:"""


# ── Prompt builders ──────────────────────────────────────


def narrator_prompt(
    history: list[dict[str, str]],
    inventory: list[str],
    quest: str,
    lore: str,
    archives: str,
    resume_context: str | None = None,
) -> str:
    return render_prompt(NARRATOR_TEMPLATE, {
        "world": WORLD_NAME,
        "lore": lore,
        "archives": archives,
        "inventory": json.dumps(inventory, ensure_ascii=False),
        "quest": quest,
        "resume": resume_context or "",
        "history": history,
        "schema": json.dumps(RESPONSE_SCHEMA, indent=2),
    })


def summary_prompt(transcript: list[dict[str, str]]) -> str:
    return render_prompt(SUMMARY_TEMPLATE, {"transcript": transcript})


def oracle_prompt(history: list[dict[str, Any]], message: str, lore: str) -> str:
    enriched = [{"text": h["text"], "is_user": h["role"] == "user"} for h in history]
    return render_prompt(ORACLE_TEMPLATE, {
        "world": WORLD_NAME,
        "lore": lore,
        "history": enriched,
        "message": message,
    })


def image_prompt(prompt: str) -> str:
    return f"{prompt.rstrip('. ')}. {ART_STYLE}"
