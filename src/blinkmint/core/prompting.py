"""Language-model stages: prompt enhancement and attribute synthesis.

Enhancement
-----------
:func:`enhance_prompt` rewrites the user's prompt in a single chat turn.  The
model is asked for three labelled lines::

    PROMPT: <rewritten prompt>
    STYLE: <artistic style>
    MOOD: <mood>

The whole text is passed on to the image model unchanged, so style and mood
hints reach the generator too.  Failure here is fatal to the request.

Attribute Synthesis
-------------------
:func:`synthesize_config` asks for a JSON object with ``one_word_title``,
``description``, ``mood`` and ``haiku`` and builds an :class:`NFTConfig`
from it.  This stage favours degraded output over failure: invalid JSON or
missing keys become empty strings.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from openai import AsyncOpenAI, OpenAIError

from blinkmint.core.errors import PromptEnhancementError
from blinkmint.core.metadata import Attribute, NFTConfig, NFTFile, Properties

logger = logging.getLogger(__name__)

IMAGE_MIME_TYPE = "image/png"

ENHANCE_PROMPT_TEMPLATE = """
Rewrite the following prompt:
'{prompt}'
Keep the intent of the prompt but make it more specific and artistic.
Return the adapted prompt without any added comments, title or information.
Expected output:
####
PROMPT: <the re-written prompt, enhanced to augment its artistic qualities and uniqueness>
STYLE: <the requested artistic style>
MOOD: <the desired mood for the prompt>
####
"""

ATTRIBUTES_PROMPT_TEMPLATE = """
Based on this prompt:
'{prompt}'
Generate a JSON object with the following values.
Return the JSON without any added comments, title or information.
Expected output:
{{
  "one_word_title": "<describe the image in ONE word, be creative>",
  "description": "<a very short description of the prompt>",
  "mood": "<the mood of the prompt>",
  "haiku": "<a very short haiku based on the prompt>"
}}
"""


async def enhance_prompt(
    client: AsyncOpenAI,
    prompt: str,
    *,
    model: str,
    temperature: float = 0.5,
) -> str:
    """Rewrite ``prompt`` into a richer image-generation prompt.

    Raises:
        PromptEnhancementError: If the request fails or returns no text.
    """
    try:
        completion = await client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": ENHANCE_PROMPT_TEMPLATE.format(prompt=prompt)},
                {"role": "user", "content": prompt},
            ],
            temperature=temperature,
        )
    except OpenAIError as exc:
        raise PromptEnhancementError(f"Prompt enhancement failed: {exc}") from exc

    content = (completion.choices[0].message.content or "").strip()
    if not content:
        raise PromptEnhancementError("Prompt enhancement returned no text")
    return content


def _parse_attributes(content: str | None) -> dict:
    try:
        parsed = json.loads(content or "{}")
    except json.JSONDecodeError:
        logger.warning("Attribute response was not valid JSON, using empty values")
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _text(value) -> str:
    return value if isinstance(value, str) else ""


async def synthesize_config(
    client: AsyncOpenAI,
    enhanced_prompt: str,
    salt: int,
    note: str,
    *,
    model: str,
    upload_path: Path,
    temperature: float = 0.5,
) -> NFTConfig:
    """Derive title, description, mood and haiku and build the NFT config.

    Args:
        client: OpenAI client.
        enhanced_prompt: Output of :func:`enhance_prompt`.
        salt: Disambiguating number; embedded in the image file name.
        note: The user's (unsalted) memo, stored as the ``Note`` trait.
        model: Chat model name.
        upload_path: Directory the image will be written to.
        temperature: Sampling temperature.

    Returns:
        A new :class:`NFTConfig` with an empty image URI.
    """
    completion = await client.chat.completions.create(
        model=model,
        messages=[
            {
                "role": "system",
                "content": ATTRIBUTES_PROMPT_TEMPLATE.format(prompt=enhanced_prompt),
            },
            {"role": "user", "content": enhanced_prompt},
        ],
        temperature=temperature,
        response_format={"type": "json_object"},
    )
    values = _parse_attributes(completion.choices[0].message.content)

    return NFTConfig(
        upload_path=upload_path,
        image_file_name=f"image{salt}.png",
        image_mime_type=IMAGE_MIME_TYPE,
        name=_text(values.get("one_word_title")),
        description=_text(values.get("description")),
        attributes=[
            Attribute(trait_type="Mood", value=_text(values.get("mood"))),
            Attribute(trait_type="Haiku", value=_text(values.get("haiku"))),
            Attribute(trait_type="Note", value=note or ""),
        ],
        properties=Properties(files=[NFTFile(uri="", type=IMAGE_MIME_TYPE)], category="image"),
    )
