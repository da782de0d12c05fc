"""Shared service clients passed explicitly into every pipeline stage.

A :class:`ServiceContext` is built once in the FastAPI lifespan and stored on
``app.state.context``.  Stages never reach for module-level clients; tests
build a context from fakes instead.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field

import httpx
from openai import AsyncOpenAI
from solana.rpc.async_api import AsyncClient
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from blinkmint.core.config import BlinkmintConfig
from blinkmint.core.errors import ConfigurationError
from blinkmint.core.publishing import PinataUploader, StorageUploader
from blinkmint.core.retry import Sleep
from blinkmint.core.safety import SafetyGate, build_safety_gate

logger = logging.getLogger(__name__)


def load_keypair(secret: str) -> Keypair:
    """Parse the service wallet secret key.

    Accepts a comma-separated list of byte values (optionally wrapped in
    brackets, as written by ``solana-keygen``) or a base58 string.

    Raises:
        ConfigurationError: If the secret is empty or cannot be parsed.
    """
    secret = secret.strip()
    if not secret:
        raise ConfigurationError("Minter key is not set in environment variables")

    try:
        if secret.startswith("["):
            values = json.loads(secret)
        elif "," in secret:
            values = [int(part) for part in secret.split(",")]
        else:
            return Keypair.from_base58_string(secret)
        return Keypair.from_bytes(bytes(values))
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Minter key is malformed: {exc}") from exc


@dataclass
class ServiceContext:
    """Clients and settings shared by all pipelines.

    Attributes:
        settings: Loaded configuration.
        rpc: Solana JSON-RPC client.
        openai: OpenAI client for chat, moderation and images.
        http: Shared HTTP client (price lookup, image download, pinning).
        storage: Decentralized storage uploader.
        safety: Content safety gate.
        minter: Service wallet; receives payments and signs mints.
        sleep: Awaitable sleep used by polling and retries.
    """

    settings: BlinkmintConfig
    rpc: AsyncClient
    openai: AsyncOpenAI
    http: httpx.AsyncClient
    storage: StorageUploader
    safety: SafetyGate
    minter: Keypair
    sleep: Sleep = field(default=asyncio.sleep)

    @property
    def treasury(self) -> Pubkey:
        return self.minter.pubkey()

    @classmethod
    def from_config(cls, settings: BlinkmintConfig) -> ServiceContext:
        minter = load_keypair(settings.minter_private_key.get_secret_value())
        http = httpx.AsyncClient()
        openai = AsyncOpenAI(api_key=settings.openai_api_key.get_secret_value() or None)
        storage = PinataUploader(
            http,
            settings.pinata_jwt.get_secret_value(),
            settings.pinata_api_url,
            settings.pinata_gateway_url,
        )
        logger.info("Connecting to Solana RPC at %s", settings.rpc_url)
        return cls(
            settings=settings,
            rpc=AsyncClient(settings.rpc_url),
            openai=openai,
            http=http,
            storage=storage,
            safety=build_safety_gate(settings.safety_strategy, openai, settings.chat_model),
            minter=minter,
        )

    async def aclose(self) -> None:
        await self.rpc.close()
        await self.openai.close()
        await self.http.aclose()
