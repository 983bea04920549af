"""
Payment instructions, manual checks, client verification and ledger webhooks.
"""
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException

from solgate.api.deps import enforce_rate_limit, get_services, require_session_id
from solgate.core.errors import NotFoundError
from solgate.schemas.sessions import SessionRequest, VerifyPaymentRequest
from solgate.services.ledger.base import LedgerError
from solgate.services.payments import service as payment_codes
from solgate.services.payments.service import PaymentCommitResult
from solgate.services.payments.webhooks import (
    InvalidNotificationError,
    lamports_to_sol,
    normalize_notification,
)
from solgate.services.runtime import Services
from solgate.services.validation import validate_wallet_address

router = APIRouter(tags=["payments"], dependencies=[Depends(enforce_rate_limit)])

ERROR_STATUS = {
    payment_codes.NOT_FOUND: 404,
    payment_codes.INSUFFICIENT_AMOUNT: 400,
    payment_codes.INVALID_AMOUNT: 400,
    payment_codes.REFERENCE_REUSED: 409,
    payment_codes.LEDGER_UNAVAILABLE: 503,
}


def _raise_for(result: PaymentCommitResult) -> None:
    if not result.committed:
        raise HTTPException(status_code=ERROR_STATUS.get(result.error_code, 400), detail=result.error)


@router.post("/create-payment")
def create_payment(payload: SessionRequest, services: Services = Depends(get_services)) -> dict:
    session_id = require_session_id(payload.session_id)
    try:
        instructions = services.payments.create_payment(session_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Session not found")
    sol = lamports_to_sol(instructions.amount)
    return {
        "success": True,
        "sessionId": instructions.session_id,
        "paymentAddress": instructions.payment_address,
        "referenceId": instructions.reference_id,
        "amount": sol,
        "amountBaseUnits": instructions.amount,
        "currency": "SOL",
        "expiresAt": instructions.expires_at.isoformat(),
        "message": f"Send {sol} SOL to {instructions.payment_address}",
    }


@router.post("/check-payment")
async def check_payment(payload: SessionRequest, services: Services = Depends(get_services)) -> dict:
    session_id = require_session_id(payload.session_id)
    try:
        result = await services.payments.check_payment(session_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Session not found")
    except LedgerError as e:
        raise HTTPException(status_code=503, detail=f"Ledger unavailable: {e}")
    response = {"success": True, "sessionId": session_id, **result.decision.to_response()}
    if result.balance is not None:
        response["balance"] = result.balance
    if result.commit is not None and not result.commit.committed:
        response["message"] = result.commit.error
    return response


@router.post("/verify-payment")
async def verify_payment(payload: VerifyPaymentRequest, services: Services = Depends(get_services)) -> dict:
    hint = payload.session_id or payload.wallet_address or payload.reference_id
    if not hint:
        raise HTTPException(status_code=400, detail="Session ID, wallet address or reference ID is required")
    result = await services.payments.verify_and_commit(hint, payload.tx_id, payload.amount, source="verify")
    _raise_for(result)
    return {
        "success": True,
        "sessionId": result.session.session_id,
        "duplicate": result.duplicate,
        "accessExpiresAt": result.session.access_expires_at.isoformat(),
    }


@router.post("/payment-webhook")
async def payment_webhook(body: Any = Body(...), services: Services = Depends(get_services)) -> dict:
    try:
        notification = normalize_notification(body)
    except InvalidNotificationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    checked = validate_wallet_address(notification.address)
    if not checked.is_valid:
        raise HTTPException(status_code=400, detail=checked.error)

    result = await services.payments.handle_notification(notification)
    _raise_for(result)
    return {
        "success": True,
        "message": "Payment already processed" if result.duplicate else "Payment processed successfully",
        "sessionId": result.session.session_id,
        "duplicate": result.duplicate,
    }
