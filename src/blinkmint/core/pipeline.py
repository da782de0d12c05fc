"""Post-payment mint pipeline and its job tracking.

The request handler answers the wallet as soon as the unsigned payment
transaction is built.  Everything after that runs here as a background job:

::

    response_sent
      -> payment_confirmed      (memo watcher)
      -> prompt_enhanced        (language model rewrite)
      -> attributes_synthesized (title, description, mood, haiku)
      -> image_produced         (text-to-image, saved locally)
      -> asset_published        (image + metadata on IPFS, local file removed)
      -> minted                 (Core asset created in the service wallet)
      -> transferred            (asset moved to the buyer)
      -> done

Any stage may move the job to ``aborted``.  Each job records its state
history so the outcome is observable through ``GET /jobs/{memo}`` as well as
the logs.

A payment that never shows up is a soft abort: nothing was minted and no
money moved to the service.  A transfer that keeps failing is the one hard
case: the asset exists but sits in the service wallet.  It is logged at
CRITICAL for manual recovery; no refund is attempted.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from threading import Lock

from solders.pubkey import Pubkey

from blinkmint.core.context import ServiceContext
from blinkmint.core.errors import DuplicateJobError, TransferError
from blinkmint.core.imaging import produce_image
from blinkmint.core.minting import mint_asset, transfer_asset
from blinkmint.core.payments import PendingPayment, find_transaction_with_memo
from blinkmint.core.prompting import enhance_prompt, synthesize_config
from blinkmint.core.publishing import publish_asset

logger = logging.getLogger(__name__)


class MintState(str, Enum):
    RECEIVED_PROMPT = "received_prompt"
    SAFETY_CHECKED = "safety_checked"
    TRANSACTION_BUILT = "transaction_built"
    RESPONSE_SENT = "response_sent"
    PAYMENT_CONFIRMED = "payment_confirmed"
    PROMPT_ENHANCED = "prompt_enhanced"
    ATTRIBUTES_SYNTHESIZED = "attributes_synthesized"
    IMAGE_PRODUCED = "image_produced"
    ASSET_PUBLISHED = "asset_published"
    MINTED = "minted"
    TRANSFERRED = "transferred"
    DONE = "done"
    ABORTED = "aborted"


TERMINAL_STATES = frozenset({MintState.DONE, MintState.ABORTED})


@dataclass(frozen=True)
class MintRequest:
    """One validated mint request.

    Attributes:
        prompt: The user's prompt, stripped.
        note: The user's memo as typed.
        salt: Random number appended to ``note``.
        payment: The payment the watcher waits for before anything is
            generated.
    """

    prompt: str
    note: str
    salt: int
    payment: PendingPayment

    @property
    def memo(self) -> str:
        """``note`` followed by the padded salt; the on-chain correlation token."""
        return self.payment.memo

    @property
    def payer_account(self) -> Pubkey:
        return self.payment.payer_account


@dataclass
class MintJob:
    memo: str
    state: MintState = MintState.RECEIVED_PROMPT
    signature: str | None = None
    asset_address: str | None = None
    metadata_uri: str | None = None
    error: str | None = None
    history: list[tuple[MintState, float]] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.history:
            self.history.append((self.state, time.time()))

    def advance(self, state: MintState) -> None:
        logger.info("Job %s: %s -> %s", self.memo, self.state.value, state.value)
        self.state = state
        self.history.append((state, time.time()))

    def abort(self, reason: str) -> None:
        self.error = reason
        self.advance(MintState.ABORTED)

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES


class JobRegistry:
    """In-memory index of mint jobs keyed by salted memo.

    Only one live job may exist per memo.  A memo whose job has finished can
    be reused, although the random salt makes that unlikely in practice.
    Once more than ``max_jobs`` are tracked, the oldest finished jobs are
    dropped.
    """

    def __init__(self, max_jobs: int = 1000) -> None:
        self._jobs: dict[str, MintJob] = {}
        self._lock = Lock()
        self._max_jobs = max_jobs

    def create(self, memo: str) -> MintJob:
        with self._lock:
            existing = self._jobs.get(memo)
            if existing is not None and not existing.finished:
                raise DuplicateJobError(f"A mint for memo {memo!r} is already pending")
            self._jobs.pop(memo, None)
            job = MintJob(memo=memo)
            self._jobs[memo] = job
            self._prune()
            return job

    def _prune(self) -> None:
        excess = len(self._jobs) - self._max_jobs
        if excess <= 0:
            return
        stale = [memo for memo, job in self._jobs.items() if job.finished][:excess]
        for memo in stale:
            del self._jobs[memo]

    def get(self, memo: str) -> MintJob | None:
        return self._jobs.get(memo)

    def __len__(self) -> int:
        return len(self._jobs)


async def run_mint_pipeline(ctx: ServiceContext, request: MintRequest, job: MintJob) -> None:
    """Wait for payment, then generate, publish, mint and transfer.

    Runs after the HTTP response has been sent, so nothing raised here can
    reach the caller.  Failures are logged and recorded on ``job``.
    """
    settings = ctx.settings
    try:
        signature = await find_transaction_with_memo(
            ctx.rpc,
            request.payment,
            attempts=settings.poll_attempts,
            interval=settings.poll_interval_seconds,
            window=settings.poll_window,
            sleep=ctx.sleep,
        )
        if signature is None:
            logger.info("Transaction with memo %r not found within the polling budget", request.memo)
            job.abort("payment_not_found")
            return
        job.signature = signature
        job.advance(MintState.PAYMENT_CONFIRMED)

        enhanced = await enhance_prompt(ctx.openai, request.prompt, model=settings.chat_model)
        logger.info("Enhanced prompt: %s", enhanced)
        job.advance(MintState.PROMPT_ENHANCED)

        nft_config = await synthesize_config(
            ctx.openai,
            enhanced,
            request.salt,
            request.note,
            model=settings.chat_model,
            upload_path=settings.upload_dir,
        )
        logger.info("NFT name: %r", nft_config.name)
        job.advance(MintState.ATTRIBUTES_SYNTHESIZED)

        image_path = await produce_image(
            ctx.openai,
            ctx.http,
            enhanced,
            nft_config,
            model=settings.image_model,
            size=settings.image_size,
            quality=settings.image_quality,
        )
        job.advance(MintState.IMAGE_PRODUCED)

        try:
            metadata_uri = await publish_asset(ctx.storage, image_path, nft_config)
        finally:
            try:
                image_path.unlink()
                logger.info("Local image file %s deleted", image_path)
            except OSError as exc:
                logger.error("Failed to delete the local image file %s: %s", image_path, exc)
        job.metadata_uri = metadata_uri
        job.advance(MintState.ASSET_PUBLISHED)

        minted = await mint_asset(ctx.rpc, ctx.minter, metadata_uri, nft_config.name)
        job.asset_address = minted.asset_address
        job.advance(MintState.MINTED)

        await transfer_asset(
            ctx.rpc,
            ctx.minter,
            minted.asset_address,
            request.payer_account,
            attempts=settings.transfer_attempts,
            delay=settings.transfer_delay_seconds,
            sleep=ctx.sleep,
        )
        job.advance(MintState.TRANSFERRED)
        job.advance(MintState.DONE)
        logger.info("Mint for memo %r completed successfully", request.memo)

    except TransferError as exc:
        logger.critical(
            "Orphaned asset %s: transfer to %s failed (memo %r, payment %s). "
            "Manual transfer required: %s",
            exc.asset_address,
            request.payer_account,
            request.memo,
            job.signature,
            exc,
        )
        job.abort(str(exc))
    except Exception as exc:
        logger.exception("Mint pipeline for memo %r failed in state %s", request.memo, job.state.value)
        job.abort(str(exc))
