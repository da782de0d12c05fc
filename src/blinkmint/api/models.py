"""Pydantic request and response models for the Blinkmint API.

Models
------
ActionPostRequest
    Body of ``POST /post_action`` — the wallet address that will pay.
ActionPostResponse
    Success body of ``POST /post_action`` — the unsigned transaction.
JobStatusResponse
    Body of ``GET /jobs/{memo}`` — progress of a background mint.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from blinkmint.core.pipeline import MintJob


class ActionPostRequest(BaseModel):
    """Request body for ``POST /post_action``.

    Attributes:
        account: Base58 address of the wallet that signs and pays.
    """

    account: str | None = Field(
        default=None,
        description="Base58 address of the paying wallet.",
    )


class ActionPostResponse(BaseModel):
    """Response body for ``POST /post_action``.

    Attributes:
        transaction: Base64-encoded unsigned transaction.
        message: Status message shown by the wallet.
        type: Always ``"transaction"``.
    """

    transaction: str = Field(..., description="Base64-encoded unsigned transaction.")
    message: str = Field(default="", description="Message shown to the user.")
    type: str = Field(default="transaction")


class StateChange(BaseModel):
    state: str
    at: float


class JobStatusResponse(BaseModel):
    """Response body for ``GET /jobs/{memo}``."""

    memo: str
    state: str
    signature: str | None = None
    asset_address: str | None = None
    metadata_uri: str | None = None
    error: str | None = None
    history: list[StateChange] = Field(default_factory=list)

    @classmethod
    def from_job(cls, job: MintJob) -> JobStatusResponse:
        return cls(
            memo=job.memo,
            state=job.state.value,
            signature=job.signature,
            asset_address=job.asset_address,
            metadata_uri=job.metadata_uri,
            error=job.error,
            history=[StateChange(state=state.value, at=at) for state, at in job.history],
        )
