"""Exception hierarchy for the mint pipeline.

Every error raised by a pipeline stage derives from :class:`BlinkmintError`
so the request handler and the background runner can tell pipeline failures
apart from programming errors.
"""

from __future__ import annotations


class BlinkmintError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(BlinkmintError):
    """A required setting is missing or malformed."""


class InvalidAccountError(BlinkmintError):
    """The caller supplied a string that is not a valid wallet address."""


class SafetyCheckError(BlinkmintError):
    """The content safety service could not produce a verdict."""


class PromptEnhancementError(BlinkmintError):
    """The language model failed to rewrite the prompt."""


class ImageGenerationError(BlinkmintError):
    """The image could not be generated, downloaded or saved."""


class PublishError(BlinkmintError):
    """An upload to decentralized storage failed or returned no URI."""


class MintError(BlinkmintError):
    """The asset creation transaction failed or was not confirmed."""


class TransferError(BlinkmintError):
    """The minted asset could not be transferred to the buyer.

    Attributes:
        asset_address: Address of the asset left in the service wallet.
    """

    def __init__(self, message: str, asset_address: str) -> None:
        super().__init__(message)
        self.asset_address = asset_address


class DuplicateJobError(BlinkmintError):
    """A job for the same salted memo is already being tracked."""
