"""Pydantic models for NFT metadata.

:class:`NFTConfig` carries both the local file-handling fields used while
the image is produced and uploaded, and the token metadata fields that end
up in the JSON document stored alongside the image.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field


class Attribute(BaseModel):
    """A single ``(trait_type, value)`` pair shown by wallets and marketplaces."""

    trait_type: str
    value: str = ""


class NFTFile(BaseModel):
    uri: str = ""
    type: str = "image/png"


class Properties(BaseModel):
    files: list[NFTFile] = Field(default_factory=list)
    category: str = "image"


class NFTConfig(BaseModel):
    """Metadata for one mint, built by the attribute synthesizer.

    Attributes:
        upload_path: Directory the generated image is written to.
        image_file_name: File name of the image, unique per request.
        image_mime_type: Content type declared when uploading the image.
        name: Display name of the token.
        description: Short description of the artwork.
        image: URI of the uploaded image.  Empty until the image is uploaded.
        attributes: Ordered trait list.
        properties: Token-metadata ``properties`` block.
    """

    upload_path: Path
    image_file_name: str
    image_mime_type: str = "image/png"

    name: str = ""
    description: str = ""
    image: str = ""
    attributes: list[Attribute] = Field(default_factory=list)
    properties: Properties = Field(default_factory=Properties)

    @property
    def image_path(self) -> Path:
        return self.upload_path / self.image_file_name

    def with_image_uri(self, uri: str) -> NFTConfig:
        """Return a copy with the uploaded image URI filled in."""
        files = [NFTFile(uri=uri, type=self.image_mime_type)]
        return self.model_copy(
            update={
                "image": uri,
                "properties": self.properties.model_copy(update={"files": files}),
            }
        )

    def to_metadata(self) -> dict:
        """Return the JSON document uploaded next to the image."""
        return self.model_dump(
            mode="json",
            include={"name", "description", "image", "attributes", "properties"},
        )
