"""
Session bootstrap, access checks and recovery.
"""
from fastapi import APIRouter, Depends, HTTPException, Query, Request

from solgate.api.deps import (
    enforce_rate_limit,
    get_client_info,
    get_services,
    require_session_id,
    session_id_from_headers,
)
from solgate.core.errors import NotFoundError
from solgate.paywall import AccessReason
from solgate.schemas.sessions import RecoveryRequest, SessionRequest
from solgate.services.runtime import Services
from solgate.services.sessions.service import ClientInfo
from solgate.services.validation import (
    validate_reference_id,
    validate_session_id,
    validate_wallet_address,
)

router = APIRouter(tags=["sessions"], dependencies=[Depends(enforce_rate_limit)])


@router.post("/session")
def bootstrap_session(
    request: Request,
    payload: SessionRequest | None = None,
    client: ClientInfo = Depends(get_client_info),
    services: Services = Depends(get_services),
) -> dict:
    """Reuse the caller's session or start a new trial session."""
    candidate = (payload.session_id if payload else None) or session_id_from_headers(request)
    existing = validate_session_id(candidate).sanitized if candidate else None
    result = services.sessions.bootstrap(existing, client)
    return {
        "success": True,
        "sessionId": result.session.session_id,
        "isNew": result.is_new,
        **result.decision.to_response(),
        "session": result.session.public_view(),
    }


@router.get("/session")
def get_session(
    session_id: str = Query(..., alias="sessionId"),
    client: ClientInfo = Depends(get_client_info),
    services: Services = Depends(get_services),
) -> dict:
    session_id = require_session_id(session_id)
    try:
        record = services.sessions.get(session_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Session not found")
    decision = services.sessions.check_access(session_id, client)
    response = {"success": True, "sessionId": record.session_id, **decision.to_response()}
    if decision.reason != AccessReason.UNKNOWN:
        response["session"] = record.public_view()
    return response


@router.post("/check-access")
def check_access(
    request: Request,
    payload: SessionRequest | None = None,
    client: ClientInfo = Depends(get_client_info),
    services: Services = Depends(get_services),
) -> dict:
    session_id = require_session_id((payload.session_id if payload else None) or session_id_from_headers(request))
    decision = services.sessions.check_access(session_id, client)
    return {"success": True, "sessionId": session_id, **decision.to_response()}


@router.post("/session-recovery")
def recover_session(payload: RecoveryRequest, services: Services = Depends(get_services)) -> dict:
    if not (payload.session_id or payload.wallet_address or payload.reference_id):
        raise HTTPException(status_code=400, detail="Session ID, wallet address or reference ID is required")

    session_id = address = reference_id = None
    if payload.session_id:
        session_id = require_session_id(payload.session_id)
    if payload.wallet_address:
        checked = validate_wallet_address(payload.wallet_address)
        if not checked.is_valid:
            raise HTTPException(status_code=400, detail=checked.error)
        address = checked.sanitized
    if payload.reference_id:
        checked = validate_reference_id(payload.reference_id)
        if not checked.is_valid:
            raise HTTPException(status_code=400, detail=checked.error)
        reference_id = checked.sanitized

    try:
        info = services.sessions.recover(session_id, address, reference_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Session not found")
    return {"success": True, "session": info.to_response()}
