from __future__ import annotations
"""Scene writer: breaks a story into ordered scene descriptions via the LLM.

Regeneration passes the previous breakdown and the operator's feedback as
context so the model revises rather than starting from scratch.
"""

import json
import logging
import re

from storyreel.config import get_settings
from storyreel.services.llm_client import LLMError, llm_call

logger = logging.getLogger(__name__)
settings = get_settings()

STORY_TO_SCENES_SYSTEM_PROMPT = """You are a professional short-video screenwriter.
Split the user's short story into independent scenes suitable for a short video.

Requirements:
1. Produce 4-8 scenes depending on the story length.
2. Each scene must have a clear visual description covering characters,
   actions, environment, mood and lighting, detailed enough to generate an
   image from, and suitable for 5-10 seconds of video.
3. Scenes must flow coherently from one to the next.
4. Output JSON only, in this format:
{"scenes": [{"order_index": 1, "description": "detailed visual description"}]}"""

REGENERATE_SYSTEM_SUFFIX = """

You are revising an earlier breakdown. Keep what works, fix what the
feedback asks for, and still output the complete list of scenes."""

STYLE_GUIDANCE: dict[str, str] = {
    "realistic": "Style: realistic, natural lighting, true-to-life detail",
    "anime": "Style: Japanese anime, vivid colors, clean line art",
    "cartoon": "Style: cartoon, playful exaggeration, bright colors",
    "cinematic": "Style: cinematic, epic atmosphere, professional camera work",
    "watercolor": "Style: watercolor, soft and delicate, painterly",
    "oil_painting": "Style: oil painting, rich texture, saturated colors",
    "sketch": "Style: pencil sketch, line-driven, grayscale",
    "cyberpunk": "Style: cyberpunk, neon lights, high-tech",
    "fantasy": "Style: fantasy, magical elements, dreamy colors",
    "scifi": "Style: science fiction, futuristic, advanced technology",
}


def build_style_guidance(style: str | None) -> str:
    return STYLE_GUIDANCE.get(style or "", STYLE_GUIDANCE["realistic"])


def parse_scenes_json(content: str) -> list[str]:
    """Extract ordered, non-empty scene descriptions from a model response."""
    match = re.search(r"\{[\s\S]*\}", content)
    if not match:
        raise LLMError("Failed to parse scenes from response: no JSON found")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise LLMError(f"Failed to parse JSON: {e}") from e

    scenes = data.get("scenes") if isinstance(data, dict) else None
    if not isinstance(scenes, list):
        raise LLMError("Invalid response structure: missing scenes array")

    indexed = []
    for i, item in enumerate(scenes):
        if not isinstance(item, dict):
            continue
        description = str(item.get("description") or "").strip()
        if not description:
            continue
        order = item.get("order_index")
        indexed.append((order if isinstance(order, int) else i + 1, i, description))
    indexed.sort()
    return [description for _, _, description in indexed]


async def generate_scene_descriptions(
    story: str,
    style: str | None = None,
    previous: list[str] | None = None,
    feedback: str | None = None,
) -> list[str]:
    """Split a story into scene descriptions, optionally revising a prior set."""
    if settings.USE_MOCK_API:
        return _mock_scenes(story, style)

    system_prompt = STORY_TO_SCENES_SYSTEM_PROMPT
    parts = [f"Split the following story into video scenes:\n\n{story}", build_style_guidance(style)]
    if previous:
        system_prompt += REGENERATE_SYSTEM_SUFFIX
        listing = "\n".join(f"{i + 1}. {d}" for i, d in enumerate(previous))
        parts.append(f"Previous scenes:\n{listing}")
    if feedback:
        parts.append(f"Feedback on the previous scenes:\n{feedback}")

    content = await llm_call(
        system_prompt,
        "\n\n".join(parts),
        json_mode=True,
        caller="scene_writer",
    )
    descriptions = parse_scenes_json(content)
    logger.info("Scene writer produced %d scenes", len(descriptions))
    return descriptions


def _mock_scenes(story: str, style: str | None) -> list[str]:
    """One scene per sentence (max 8), for offline development."""
    sentences = [s.strip() for s in re.split(r"(?<=[.!?。！？])\s*|\n+", story) if s.strip()]
    guidance = build_style_guidance(style)
    return [f"{s} ({guidance})" for s in sentences[:8]]
