"""Asset publisher: upload the image and its metadata to IPFS.

Uploads go through a :class:`StorageUploader`.  The production uploader pins
to Pinata and returns gateway URLs; tests substitute an in-memory fake.

Each upload is attempted once.  An upload that reports success but yields
no URI is treated as a failure.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Protocol

import httpx

from blinkmint.core.errors import PublishError
from blinkmint.core.metadata import NFTConfig

logger = logging.getLogger(__name__)


class StorageUploader(Protocol):
    async def upload_file(
        self, data: bytes, *, file_name: str, content_type: str, display_name: str
    ) -> str: ...

    async def upload_json(self, document: dict, *, name: str) -> str: ...


class PinataUploader:
    """Pins files and JSON documents through the Pinata API.

    Args:
        http: Shared HTTP client.
        jwt: Pinata API token.
        api_url: Pinning API base URL.
        gateway_url: Public gateway used to build returned URIs.
    """

    def __init__(self, http: httpx.AsyncClient, jwt: str, api_url: str, gateway_url: str) -> None:
        self._http = http
        self._headers = {"Authorization": f"Bearer {jwt}"}
        self._api_url = api_url.rstrip("/")
        self._gateway_url = gateway_url.rstrip("/")

    def _uri(self, payload: dict) -> str:
        cid = payload.get("IpfsHash")
        return f"{self._gateway_url}/ipfs/{cid}" if cid else ""

    async def upload_file(
        self, data: bytes, *, file_name: str, content_type: str, display_name: str
    ) -> str:
        response = await self._http.post(
            f"{self._api_url}/pinning/pinFileToIPFS",
            headers=self._headers,
            files={"file": (file_name, data, content_type)},
            data={"pinataMetadata": json.dumps({"name": display_name or file_name})},
            timeout=120.0,
        )
        response.raise_for_status()
        return self._uri(response.json())

    async def upload_json(self, document: dict, *, name: str) -> str:
        response = await self._http.post(
            f"{self._api_url}/pinning/pinJSONToIPFS",
            headers=self._headers,
            json={"pinataContent": document, "pinataMetadata": {"name": name}},
            timeout=60.0,
        )
        response.raise_for_status()
        return self._uri(response.json())


async def publish_asset(uploader: StorageUploader, image_path: Path, config: NFTConfig) -> str:
    """Upload the image, then the metadata document referencing it.

    Args:
        uploader: Storage backend.
        image_path: Local PNG produced by the image stage.
        config: NFT config; its image URI is filled in for the metadata
            upload without modifying the caller's instance.

    Returns:
        URI of the metadata document.

    Raises:
        PublishError: If reading the file or either upload fails, or an
            upload returns an empty URI.
    """
    try:
        data = image_path.read_bytes()
    except OSError as exc:
        raise PublishError(f"Could not read image {image_path}: {exc}") from exc

    try:
        image_uri = await uploader.upload_file(
            data,
            file_name=config.image_file_name,
            content_type=config.image_mime_type,
            display_name=config.name,
        )
    except httpx.HTTPError as exc:
        raise PublishError(f"Failed to upload image: {exc}") from exc
    if not image_uri:
        raise PublishError("Failed to upload image")
    logger.info("Image uploaded, URI: %s", image_uri)

    metadata = config.with_image_uri(image_uri).to_metadata()
    try:
        metadata_uri = await uploader.upload_json(
            metadata, name=f"{config.image_file_name}.json"
        )
    except httpx.HTTPError as exc:
        raise PublishError(f"Failed to upload metadata: {exc}") from exc
    if not metadata_uri:
        raise PublishError("Failed to upload metadata")

    logger.info("Metadata uploaded, URI: %s", metadata_uri)
    return metadata_uri
