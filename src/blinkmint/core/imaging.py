"""Image producer: generate one image and save it to the upload directory."""

from __future__ import annotations

import io
import logging
from pathlib import Path

import httpx
from openai import AsyncOpenAI, OpenAIError
from PIL import Image, UnidentifiedImageError

from blinkmint.core.errors import ImageGenerationError
from blinkmint.core.metadata import NFTConfig

logger = logging.getLogger(__name__)


async def produce_image(
    client: AsyncOpenAI,
    http: httpx.AsyncClient,
    prompt: str,
    config: NFTConfig,
    *,
    model: str = "dall-e-3",
    size: str = "1024x1024",
    quality: str = "standard",
) -> Path:
    """Generate a square image for ``prompt`` and write it as PNG.

    The image is requested from the text-to-image model, downloaded from the
    returned URL, decoded with Pillow and saved to ``config.image_path``.
    The upload directory is created if it does not exist.

    Args:
        client: OpenAI client.
        http: Shared HTTP client used for the download.
        prompt: Enhanced prompt.
        config: NFT config; provides the target directory and file name.
        model: Image model name.
        size: Requested image size.
        quality: Requested image quality.

    Returns:
        Path of the saved PNG file.

    Raises:
        ImageGenerationError: On any generation, download, decode or disk
            failure.
    """
    try:
        response = await client.images.generate(
            model=model,
            prompt=prompt,
            n=1,
            size=size,
            quality=quality,
        )
    except OpenAIError as exc:
        raise ImageGenerationError(f"Image generation failed: {exc}") from exc

    image_url = response.data[0].url if response.data else None
    if not image_url:
        raise ImageGenerationError("Image generation returned no URL")

    try:
        download = await http.get(image_url, timeout=60.0)
        download.raise_for_status()
    except httpx.HTTPError as exc:
        raise ImageGenerationError(f"Image download failed: {exc}") from exc

    image_path = config.image_path
    try:
        image = Image.open(io.BytesIO(download.content))
        image_path.parent.mkdir(parents=True, exist_ok=True)
        image.save(image_path, format="PNG")
    except (UnidentifiedImageError, OSError) as exc:
        raise ImageGenerationError(f"Could not save image to {image_path}: {exc}") from exc

    logger.info("Image saved to %s", image_path)
    return image_path
