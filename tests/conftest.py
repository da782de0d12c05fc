"""Shared pytest fixtures for Blinkmint tests.

External services are replaced by small fakes:

- :class:`FakeLedger` stands in for the Solana ``AsyncClient`` and scripts
  the signature history seen by the payment watcher.
- :func:`make_openai` builds a ``MagicMock`` with ``AsyncMock`` endpoints
  for moderation, chat and image generation.
- :class:`FakeStorage` records uploads and returns fixed URIs.
- HTTP traffic (price lookup, image download) goes through a real
  ``httpx.AsyncClient`` on top of ``httpx.MockTransport``.
"""

from __future__ import annotations

import io
import json
import shutil
import tempfile
from collections.abc import Generator
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from fastapi.testclient import TestClient
from PIL import Image
from solana.rpc.core import RPCException
from solders.hash import Hash
from solders.keypair import Keypair
from solders.signature import Signature

from blinkmint.core.config import BlinkmintConfig
from blinkmint.core.context import ServiceContext
from blinkmint.core.pipeline import JobRegistry
from blinkmint.core.safety import ModerationSafetyGate

PRICE_URL = "https://price.test/simple/price?ids=solana&vs_currencies=usd"
IMAGE_URL = "https://images.test/generated/fox.png"
GATEWAY = "https://gateway.test/ipfs"

ENHANCED_PROMPT = "PROMPT: a red fox curled in fresh snow\nSTYLE: watercolor\nMOOD: serene"
ATTRIBUTES = {
    "one_word_title": "Frostfox",
    "description": "A fox resting in snow",
    "mood": "serene",
    "haiku": "white hush of the field / a red ember breathing slow / winter keeps its watch",
}


# ---------------------------------------------------------------------------
# Fakes.
# ---------------------------------------------------------------------------


def signature_status(memo: str | None, signature: str = "sig") -> SimpleNamespace:
    """Build an object shaped like ``RpcConfirmedTransactionStatusWithSignature``."""
    return SimpleNamespace(signature=signature, memo=memo)


class FakeLedger:
    """Scriptable stand-in for ``solana.rpc.async_api.AsyncClient``.

    Attributes:
        history: One list of signature statuses per poll.  The last entry is
            repeated once the script runs out.  An ``Exception`` instance in
            place of a list is raised for that poll.
        fail_from: Index of the first ``send_raw_transaction`` call that
            raises ``RPCException``; ``None`` means every send succeeds.
        confirm_err: Value placed in the confirmation status ``err`` field.
    """

    def __init__(self, history=None, fail_from: int | None = None, confirm_err=None) -> None:
        self.history = list(history or [[]])
        self.fail_from = fail_from
        self.confirm_err = confirm_err
        self.polls: list[dict] = []
        self.sent: list[bytes] = []
        self.send_calls = 0
        self.closed = False

    async def get_signatures_for_address(self, account, limit=None, commitment=None):
        index = min(len(self.polls), len(self.history) - 1)
        self.polls.append({"account": account, "limit": limit, "commitment": commitment})
        batch = self.history[index]
        if isinstance(batch, Exception):
            raise batch
        return SimpleNamespace(value=batch)

    async def get_latest_blockhash(self, commitment=None):
        return SimpleNamespace(value=SimpleNamespace(blockhash=Hash.default()))

    async def send_raw_transaction(self, data, opts=None):
        call = self.send_calls
        self.send_calls += 1
        if self.fail_from is not None and call >= self.fail_from:
            raise RPCException("AccountNotFound")
        self.sent.append(data)
        return SimpleNamespace(value=Signature.default())

    async def confirm_transaction(self, signature, commitment=None):
        return SimpleNamespace(value=[SimpleNamespace(err=self.confirm_err)])

    async def close(self):
        self.closed = True


class FakeStorage:
    """Records uploads and returns fixed URIs (empty strings simulate failure)."""

    def __init__(self, image_uri: str = f"{GATEWAY}/img-cid", metadata_uri: str = f"{GATEWAY}/json-cid"):
        self.image_uri = image_uri
        self.metadata_uri = metadata_uri
        self.files: list[dict] = []
        self.documents: list[dict] = []

    async def upload_file(self, data, *, file_name, content_type, display_name):
        self.files.append(
            {"data": data, "file_name": file_name, "content_type": content_type, "display_name": display_name}
        )
        return self.image_uri

    async def upload_json(self, document, *, name):
        self.documents.append({"document": document, "name": name})
        return self.metadata_uri


def make_openai(
    *,
    flagged: bool = False,
    enhanced: str = ENHANCED_PROMPT,
    attributes: dict | str = ATTRIBUTES,
    image_url: str | None = IMAGE_URL,
) -> MagicMock:
    """Build a mock ``AsyncOpenAI`` client.

    Chat calls that request ``response_format`` get the attribute JSON; all
    other chat calls get the enhanced prompt.
    """
    content = attributes if isinstance(attributes, str) else json.dumps(attributes)

    async def chat_create(**kwargs):
        text = content if "response_format" in kwargs else enhanced
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])

    client = MagicMock()
    client.moderations.create = AsyncMock(
        return_value=SimpleNamespace(results=[SimpleNamespace(flagged=flagged)])
    )
    client.chat.completions.create = AsyncMock(side_effect=chat_create)
    client.images.generate = AsyncMock(
        return_value=SimpleNamespace(data=[SimpleNamespace(url=image_url)])
    )
    client.close = AsyncMock()
    return client


def png_bytes(size: int = 16) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (size, size), color=(200, 40, 20)).save(buffer, format="PNG")
    return buffer.getvalue()


def make_http(sol_price=150.0, image_status: int = 200) -> httpx.AsyncClient:
    """HTTP client serving the price API and the generated image."""
    image = png_bytes()

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "price.test":
            return httpx.Response(200, json={"solana": {"usd": sol_price}})
        if request.url.host == "images.test":
            if image_status != 200:
                return httpx.Response(image_status)
            return httpx.Response(200, content=image, headers={"content-type": "image/png"})
        return httpx.Response(404)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def no_sleep(seconds: float) -> None:
    return None


# ---------------------------------------------------------------------------
# Fixtures.
# ---------------------------------------------------------------------------


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path) -> BlinkmintConfig:
    """Configuration with zero delays and a temporary upload directory."""
    return BlinkmintConfig(
        _env_file=None,
        rpc_url="http://rpc.test",
        upload_dir=temp_dir / "image",
        price_api_url=PRICE_URL,
        public_base_url="https://mint.test",
        poll_attempts=3,
        poll_interval_seconds=0,
        poll_window=5,
        transfer_attempts=4,
        transfer_delay_seconds=0,
    )


@pytest.fixture
def minter() -> Keypair:
    return Keypair()


@pytest.fixture
def buyer() -> Keypair:
    return Keypair()


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def openai_client() -> MagicMock:
    return make_openai()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def service_context(test_config, ledger, openai_client, storage, minter) -> ServiceContext:
    """ServiceContext wired entirely to fakes."""
    return ServiceContext(
        settings=test_config,
        rpc=ledger,
        openai=openai_client,
        http=make_http(),
        storage=storage,
        safety=ModerationSafetyGate(openai_client),
        minter=minter,
        sleep=no_sleep,
    )


@pytest.fixture
def test_client(service_context) -> Generator[TestClient, None, None]:
    """FastAPI TestClient with the fake context installed on ``app.state``.

    The lifespan is not entered, so no real clients are constructed.
    """
    from blinkmint.api.main import app

    app.state.context = service_context
    app.state.jobs = JobRegistry()
    try:
        yield TestClient(app)
    finally:
        del app.state.context
        del app.state.jobs
