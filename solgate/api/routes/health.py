import asyncio

from fastapi import APIRouter, Depends, Response

from solgate.api.deps import get_services
from solgate.services.runtime import Services


router = APIRouter()


@router.get("/health")
def health() -> dict:
    """Liveness probe - always returns 200 if app is running."""
    return {"status": "ok"}


@router.get("/ready")
async def readiness(response: Response, services: Services = Depends(get_services)) -> dict:
    """Readiness probe - returns 503 if the session store or the ledger is unavailable."""
    try:
        await asyncio.to_thread(services.store.ping)
        await services.ledger.ping()
        return {"status": "ready", "ledger": services.ledger.name}
    except Exception as e:
        response.status_code = 503
        return {"status": "not_ready", "error": str(e)}
