"""Tests for blinkmint.core.metadata — NFTConfig."""

from __future__ import annotations

from pathlib import Path

from blinkmint.core.metadata import Attribute, NFTConfig, NFTFile, Properties


def _config() -> NFTConfig:
    return NFTConfig(
        upload_path=Path("uploads"),
        image_file_name="image12.png",
        name="Frostfox",
        description="A fox resting in snow",
        attributes=[Attribute(trait_type="Haiku", value="..."), Attribute(trait_type="Note", value="hi")],
        properties=Properties(files=[NFTFile()], category="image"),
    )


class TestNFTConfig:
    def test_with_image_uri_fills_both_places(self):
        updated = _config().with_image_uri("https://gw/ipfs/abc")
        assert updated.image == "https://gw/ipfs/abc"
        assert updated.properties.files == [NFTFile(uri="https://gw/ipfs/abc", type="image/png")]

    def test_with_image_uri_leaves_original_untouched(self):
        config = _config()
        config.with_image_uri("https://gw/ipfs/abc")
        assert config.image == ""
        assert config.properties.files[0].uri == ""

    def test_metadata_document_shape(self):
        document = _config().with_image_uri("uri").to_metadata()
        assert set(document) == {"name", "description", "image", "attributes", "properties"}
        assert document["attributes"][1] == {"trait_type": "Note", "value": "hi"}
        assert document["properties"]["files"][0]["uri"] == "uri"

    def test_metadata_excludes_local_fields(self):
        document = _config().to_metadata()
        assert "upload_path" not in document
        assert "image_file_name" not in document
