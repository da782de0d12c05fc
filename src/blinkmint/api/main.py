"""Blinkmint — FastAPI Application.

This module is the single entry point for the web service.  It defines the
FastAPI ``app`` instance, the Solana Actions routes, and the ``main()`` CLI
function that launches the uvicorn server.

Architecture
------------
- **Configuration** is loaded once from ``BLINKMINT_*`` environment
  variables (see :mod:`blinkmint.core.config`).
- **Service clients** (RPC, OpenAI, HTTP, storage, wallet) live on a
  :class:`~blinkmint.core.context.ServiceContext` built in the lifespan and
  stored on ``app.state.context``.
- **The mint itself** runs as a FastAPI background task after the response
  carrying the unsigned payment transaction has been sent.  Progress is
  tracked by a :class:`~blinkmint.core.pipeline.JobRegistry` on
  ``app.state.jobs``.

Endpoints
---------
========  ============================  ====================================
Method    Path                          Purpose
========  ============================  ====================================
GET       ``/get_action``               Actions discovery document
OPTIONS   ``/post_action``              CORS preflight
POST      ``/post_action``              Build the unsigned payment transaction
GET       ``/actions.json``             Actions path rules
GET       ``/jobs/{memo}``              Background mint progress
GET       ``/health``                   Liveness probe
========  ============================  ====================================

Usage
-----
CLI (installed entry point)::

    blinkmint

Direct invocation::

    python -m blinkmint.api.main
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import BackgroundTasks, Body, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from blinkmint import __version__
from blinkmint.api.actions import (
    ACTIONS_CORS_HEADERS,
    PAYMENT_MESSAGE,
    ActionError,
    build_action_document,
    build_actions_rules,
)
from blinkmint.api.models import ActionPostRequest, ActionPostResponse, JobStatusResponse
from blinkmint.core.config import config
from blinkmint.core.context import ServiceContext
from blinkmint.core.errors import DuplicateJobError, InvalidAccountError, SafetyCheckError
from blinkmint.core.payments import (
    build_payment_transaction,
    get_fee_in_lamports,
    new_pending_payment,
    parse_account,
    salt_memo,
    serialize_unsigned,
)
from blinkmint.core.pipeline import JobRegistry, MintJob, MintRequest, MintState, run_mint_pipeline

logger = logging.getLogger(__name__)

PROMPT_PLACEHOLDER = "{prompt}"
MEMO_PLACEHOLDER = "{memo}"
MAX_SALT_TRIES = 5


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the service context on startup and close its clients on shutdown."""
    app.state.context = ServiceContext.from_config(config)
    app.state.jobs = JobRegistry()
    logger.info("Service wallet: %s", app.state.context.treasury)

    yield

    await app.state.context.aclose()
    logger.info("Service clients closed on shutdown.")


app = FastAPI(
    title="Blinkmint",
    description="Solana Action that turns a prompt and a payment into an AI-generated NFT.",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Action-Version", "X-Blockchain-Ids"],
)


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code, headers=ACTIONS_CORS_HEADERS)


@app.exception_handler(ActionError)
async def action_error_handler(request: Request, exc: ActionError) -> JSONResponse:
    return _error_response(exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("Rejected malformed request to %s: %s", request.url.path, exc.errors())
    return _error_response(400, "Invalid request")


# ---------------------------------------------------------------------------
# Helpers.
# ---------------------------------------------------------------------------


def _new_job(jobs: JobRegistry, note: str) -> tuple[MintJob, str, int]:
    """Salt the memo and register a job, re-salting on a collision."""
    for _ in range(MAX_SALT_TRIES):
        memo, salt = salt_memo(note)
        try:
            return jobs.create(memo), memo, salt
        except DuplicateJobError:
            logger.warning("Memo %r already pending, drawing a new salt", memo)
    raise ActionError(500, "Could not allocate a unique memo")


async def _run_job(ctx: ServiceContext, request: MintRequest, job: MintJob) -> None:
    job.advance(MintState.RESPONSE_SENT)
    await run_mint_pipeline(ctx, request, job)


# ---------------------------------------------------------------------------
# Routes.
# ---------------------------------------------------------------------------


@app.get("/get_action")
async def get_action(request: Request) -> JSONResponse:
    """Return the Actions discovery document for the mint."""
    settings = request.app.state.context.settings
    return JSONResponse(build_action_document(settings), headers=ACTIONS_CORS_HEADERS)


@app.get("/actions.json")
async def actions_rules() -> JSONResponse:
    return JSONResponse(build_actions_rules(), headers=ACTIONS_CORS_HEADERS)


@app.options("/post_action")
async def post_action_preflight() -> Response:
    return Response(status_code=200, headers=ACTIONS_CORS_HEADERS)


@app.post("/post_action")
async def post_action(
    request: Request,
    background_tasks: BackgroundTasks,
    body: ActionPostRequest | None = Body(default=None),
    user_prompt: str = "",
    memo: str = "",
) -> JSONResponse:
    """Validate the request and return an unsigned payment transaction.

    This endpoint:

    1. Salts the user's memo and registers a job for it.
    2. Rejects an empty prompt or memo and a malformed account (400).
    3. Runs the content safety gate (400 if unsafe, 500 if unavailable).
    4. Builds the fee transfer + memo transaction for the wallet to sign.
    5. Schedules the mint pipeline to run after the response is sent.

    Args:
        request: Incoming request; used to reach ``app.state``.
        background_tasks: FastAPI background task queue.
        body: JSON body carrying the paying ``account``.
        user_prompt: Prompt to turn into an image.
        memo: Personal note; salted and used as the payment memo.

    Returns:
        JSON response with ``transaction``, ``message`` and ``type``.

    Raises:
        ActionError: 400 for invalid input or an unsafe prompt, 500 for
            upstream failures before the response.
    """
    ctx: ServiceContext = request.app.state.context
    jobs: JobRegistry = request.app.state.jobs

    prompt = user_prompt.strip()
    note = memo.strip()
    job, salted_memo, salt = _new_job(jobs, note)
    logger.info("User prompt: %r, salted memo: %r", prompt, salted_memo)

    if not prompt or prompt == PROMPT_PLACEHOLDER:
        job.abort("invalid_prompt")
        raise ActionError(400, "Invalid payload or prompt")

    if not note or note == MEMO_PLACEHOLDER:
        job.abort("invalid_memo")
        raise ActionError(400, "Invalid payload or memo")

    try:
        payer = parse_account(body.account if body else None)
    except InvalidAccountError as exc:
        job.abort("invalid_account")
        raise ActionError(400, str(exc)) from exc

    try:
        verdict = await ctx.safety.check(prompt)
    except SafetyCheckError as exc:
        job.abort("safety_check_failed")
        raise ActionError(500, str(exc)) from exc
    if verdict != "safe":
        job.abort("unsafe_prompt")
        raise ActionError(400, "Prompt failed safety checks")
    job.advance(MintState.SAFETY_CHECKED)

    settings = ctx.settings
    try:
        blockhash = (await ctx.rpc.get_latest_blockhash()).value.blockhash
        fee = await get_fee_in_lamports(
            ctx.http,
            settings.price_api_url,
            target_usd=settings.mint_price_usd,
            fallback_sol=settings.fallback_fee_sol,
        )
        transaction = build_payment_transaction(
            payer,
            ctx.treasury,
            fee,
            salted_memo,
            blockhash,
            compute_unit_limit=settings.compute_unit_limit,
            compute_unit_price=settings.compute_unit_price,
        )
        payload = ActionPostResponse(
            transaction=serialize_unsigned(transaction),
            message=PAYMENT_MESSAGE,
        )
    except Exception as exc:
        logger.exception("Error building transaction for memo %r", salted_memo)
        job.abort(str(exc))
        raise ActionError(500, str(exc) or "An unknown error occurred") from exc

    pending = new_pending_payment(
        payer,
        salted_memo,
        fee,
        attempts=settings.poll_attempts,
        interval=settings.poll_interval_seconds,
    )
    logger.info(
        "Awaiting %d lamports from %s with memo %r until %.0f",
        pending.fee_lamports,
        pending.payer_account,
        pending.memo,
        pending.expiry_deadline,
    )
    job.advance(MintState.TRANSACTION_BUILT)

    mint_request = MintRequest(
        prompt=prompt,
        note=note,
        salt=salt,
        payment=pending,
    )
    background_tasks.add_task(_run_job, ctx, mint_request, job)

    return JSONResponse(payload.model_dump(), headers=ACTIONS_CORS_HEADERS)


@app.get("/jobs/{memo}")
async def get_job(memo: str, request: Request) -> JobStatusResponse:
    """Return the progress of the mint job for a salted memo.

    Raises:
        ActionError: 404 if no job is tracked for ``memo``.
    """
    job = request.app.state.jobs.get(memo)
    if job is None:
        raise ActionError(404, "Job not found")
    return JobStatusResponse.from_job(job)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok", "version": __version__}


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Configure logging and launch the uvicorn ASGI server.

    Host and port come from ``BLINKMINT_SERVER_HOST`` and
    ``BLINKMINT_SERVER_PORT`` (default ``0.0.0.0:8000``).  Registered as the
    ``blinkmint`` console script in ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    logger.info("Actions endpoint: %s/get_action", config.public_base_url.rstrip("/"))

    uvicorn.run(
        "blinkmint.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
