"""Tests for blinkmint.core.imaging — image generation and local save."""

from __future__ import annotations

import asyncio

import httpx
import pytest
from openai import OpenAIError
from PIL import Image

from blinkmint.core.errors import ImageGenerationError
from blinkmint.core.imaging import produce_image
from blinkmint.core.metadata import NFTConfig
from tests.conftest import make_http, make_openai


@pytest.fixture
def nft_config(temp_dir) -> NFTConfig:
    return NFTConfig(upload_path=temp_dir / "nested" / "image", image_file_name="image99.png")


class TestProduceImage:
    def test_saves_png_creating_directory(self, nft_config):
        client = make_openai()
        path = asyncio.run(produce_image(client, make_http(), "fox", nft_config))

        assert path == nft_config.image_path
        assert path.exists()
        with Image.open(path) as image:
            assert image.format == "PNG"

    def test_requests_one_square_image(self, nft_config):
        client = make_openai()
        asyncio.run(produce_image(client, make_http(), "fox", nft_config, model="dall-e-3"))
        client.images.generate.assert_awaited_once_with(
            model="dall-e-3", prompt="fox", n=1, size="1024x1024", quality="standard"
        )

    def test_generation_error(self, nft_config):
        client = make_openai()
        client.images.generate.side_effect = OpenAIError("content policy")
        with pytest.raises(ImageGenerationError, match="content policy"):
            asyncio.run(produce_image(client, make_http(), "fox", nft_config))

    def test_missing_url(self, nft_config):
        with pytest.raises(ImageGenerationError, match="no URL"):
            asyncio.run(produce_image(make_openai(image_url=None), make_http(), "fox", nft_config))

    def test_download_error(self, nft_config):
        with pytest.raises(ImageGenerationError, match="download"):
            asyncio.run(produce_image(make_openai(), make_http(image_status=404), "fox", nft_config))
        assert not nft_config.image_path.exists()

    def test_undecodable_bytes(self, nft_config):
        http = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda r: httpx.Response(200, content=b"<html>"))
        )
        with pytest.raises(ImageGenerationError):
            asyncio.run(produce_image(make_openai(), http, "fox", nft_config))
