from fastapi import Depends, Header, HTTPException, Request

from solgate.services.ratelimit.service import get_client_ip
from solgate.services.runtime import Services
from solgate.services.sessions.service import ClientInfo
from solgate.services.validation import validate_session_id
from solgate.utils.metrics import rate_limited_total


def get_services(request: Request) -> Services:
    return request.app.state.services


def require_admin(
    x_admin_key: str | None = Header(default=None),
    services: Services = Depends(get_services),
) -> None:
    if services.settings.admin_api_key and x_admin_key != services.settings.admin_api_key:
        raise HTTPException(status_code=401, detail="unauthorized")


def enforce_rate_limit(request: Request, services: Services = Depends(get_services)) -> None:
    result = services.rate_limiter.check(get_client_ip(request))
    if not result.allowed:
        rate_limited_total.inc()
        raise HTTPException(status_code=429, detail="Too many requests. Please try again later.")


def get_client_info(request: Request) -> ClientInfo:
    return ClientInfo(
        user_agent=request.headers.get("user-agent", ""),
        ip=get_client_ip(request),
    )


def require_session_id(value: str | None) -> str:
    result = validate_session_id(value)
    if not result.is_valid:
        raise HTTPException(status_code=400, detail=result.error)
    return result.sanitized


def session_id_from_headers(request: Request) -> str | None:
    """X-Session-ID header or Authorization: Bearer <session id>."""
    header = request.headers.get("x-session-id")
    if header:
        return header
    auth = request.headers.get("authorization", "")
    if auth.lower().startswith("bearer "):
        return auth[7:].strip()
    return None
