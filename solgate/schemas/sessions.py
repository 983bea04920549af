"""
Request schemas for session and payment endpoints. Field names on the wire are camelCase.
"""
from typing import Literal

from pydantic import BaseModel, Field

from solgate.services.payments.webhooks import MAX_LAMPORTS


class SessionRequest(BaseModel):
    session_id: str | None = Field(default=None, alias="sessionId")

    model_config = {"populate_by_name": True}


class RecoveryRequest(BaseModel):
    session_id: str | None = Field(default=None, alias="sessionId")
    wallet_address: str | None = Field(default=None, alias="walletAddress")
    reference_id: str | None = Field(default=None, alias="referenceId")

    model_config = {"populate_by_name": True}


class VerifyPaymentRequest(BaseModel):
    """Client-reported payment. amount is in lamports."""
    session_id: str | None = Field(default=None, alias="sessionId")
    wallet_address: str | None = Field(default=None, alias="walletAddress")
    reference_id: str | None = Field(default=None, alias="referenceId")
    tx_id: str = Field(..., alias="txId", min_length=1, max_length=128)
    amount: int = Field(..., ge=0, le=MAX_LAMPORTS)

    model_config = {"populate_by_name": True}


class AutoTransferRequest(BaseModel):
    action: Literal["transfer_all", "transfer_single", "get_stats"]
    session_id: str | None = Field(default=None, alias="sessionId")

    model_config = {"populate_by_name": True}
