"""
Admin API: sweeps, payment overview, session cleanup.
Protected by X-Admin-Key when ADMIN_API_KEY is set.
"""
import asyncio

from fastapi import APIRouter, Depends, HTTPException

from solgate.api.deps import get_services, require_admin, require_session_id
from solgate.schemas.sessions import AutoTransferRequest
from solgate.services.payments.webhooks import lamports_to_sol
from solgate.services.runtime import Services
from solgate.services.sweeps.scheduler import RunStatus, TriggerKind
from solgate.services.sweeps.sweeper import SweepConfigurationError, SweepOutcome

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


def _sweep_stats(services: Services) -> dict:
    stats = services.sweeper.stats()
    last = services.scheduler.last_report
    return {
        "operatorWallet": stats.operator_address,
        "feeReserve": stats.fee_reserve,
        "batchSize": stats.batch_size,
        "confirmTimeoutSeconds": stats.confirm_timeout,
        "inFlight": stats.in_flight,
        "running": services.scheduler.is_running,
        "pendingRun": services.scheduler.has_pending_run,
        "intervalSeconds": services.scheduler.interval_seconds,
        "lastRun": last.to_response() if last else None,
    }


@router.post("/auto-transfer")
async def auto_transfer(payload: AutoTransferRequest, services: Services = Depends(get_services)) -> dict:
    if payload.action == "get_stats":
        return {"success": True, "stats": _sweep_stats(services)}

    if payload.action == "transfer_single":
        session_id = require_session_id(payload.session_id)
        record = await asyncio.to_thread(services.store.get, session_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Session not found")
        if not record.is_paid:
            raise HTTPException(status_code=400, detail="Session is not paid")
        try:
            attempt = await services.sweeper.sweep_one(record)
        except SweepConfigurationError as e:
            raise HTTPException(status_code=500, detail=str(e))
        return {"success": attempt.outcome != SweepOutcome.FAIL, "result": attempt.to_response()}

    result = await services.scheduler.trigger(TriggerKind.MANUAL)
    if result.status == RunStatus.FAILED:
        raise HTTPException(status_code=500, detail=result.error)
    response = {"success": True, "status": result.status.value}
    if result.report is not None:
        response["results"] = result.report.to_response()
    return response


@router.get("/auto-transfer")
def auto_transfer_stats(services: Services = Depends(get_services)) -> dict:
    return {"success": True, "stats": _sweep_stats(services)}


@router.get("/payments")
def payments_overview(services: Services = Depends(get_services)) -> dict:
    stats = services.sessions.stats()
    return {
        "success": True,
        "stats": {
            "totalSessions": stats.total,
            "activeTrials": stats.trial,
            "paidSessions": stats.paid,
            "expiredSessions": stats.expired,
            "totalRevenue": stats.total_revenue,
            "totalRevenueSol": lamports_to_sol(stats.total_revenue),
        },
        "recentPayments": [r.public_view() for r in stats.recent_payments],
    }


@router.post("/cleanup")
def cleanup_sessions(services: Services = Depends(get_services)) -> dict:
    return {"success": True, "deleted": services.sessions.cleanup_expired()}
