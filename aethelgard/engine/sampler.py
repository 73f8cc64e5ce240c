"""Adaptive image sampling.

Images are expensive, so most turns are text-only. The chance of an image
climbs with the number of trailing segments that have none, reaching
certainty after six. An empty history always gets an image so the opening
scene is illustrated.
"""

import random

from aethelgard.models import StorySegment

# gap (trailing segments without image) → probability; gap >= len → 1.0
GAP_PROBABILITIES = (0.05, 0.20, 0.35, 0.50, 0.80, 0.90)


def image_gap(history: list[StorySegment]) -> int:
    gap = 0
    for segment in reversed(history):
        if segment.image_url:
            break
        gap += 1
    return gap


def image_probability(history: list[StorySegment]) -> float:
    if not history:
        return 1.0
    gap = image_gap(history)
    if gap >= len(GAP_PROBABILITIES):
        return 1.0
    return GAP_PROBABILITIES[gap]


def should_generate_image(
    history: list[StorySegment],
    rng: random.Random | None = None,
    force: bool = False,
) -> bool:
    """One uniform draw against image_probability(); `force` always wins."""
    draw = (rng or random).random()
    return force or draw < image_probability(history)
