"""
Monitor API Endpoints
For poll scheduler control and ledger inspection
"""
from typing import List, Optional
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from fastapi.concurrency import run_in_threadpool

from app.api.deps import get_services
from app.schemas.monitor import CheckedEmailResponse, MonitorStatusResponse, TickResponse
from app.services.credential_store import STATUS_AUTHENTICATED
from app.services.wiring import MagicCodeServices

router = APIRouter(prefix="/monitor", tags=["monitor"])


async def _require_authenticated(services: MagicCodeServices, user_id: str):
    current = await run_in_threadpool(services.credential_store.status, user_id)
    if current != STATUS_AUTHENTICATED:
        raise HTTPException(status_code=404, detail="No valid credentials for user")


@router.get("/status", response_model=MonitorStatusResponse)
def get_monitor_status(services: MagicCodeServices = Depends(get_services)):
    """Get email monitor status"""
    return MonitorStatusResponse(
        poll_interval_seconds=services.supervisor.poll_interval,
        active_users=services.supervisor.active_users(),
        retention_sweep_running=services.sweeper.is_running,
        retention_days=services.sweeper.retention_days
    )


@router.post("/{user_id}/start", response_model=TickResponse)
async def start_monitor(user_id: str, services: MagicCodeServices = Depends(get_services)):
    """Start (or restart) polling for a user"""
    await _require_authenticated(services, user_id)
    services.supervisor.start_polling(user_id)
    return TickResponse(message=f"Email polling started for {user_id}")


@router.post("/{user_id}/stop", response_model=TickResponse)
async def stop_monitor(user_id: str, services: MagicCodeServices = Depends(get_services)):
    """Stop polling for a user without touching their tokens"""
    if not services.supervisor.is_polling(user_id):
        return TickResponse(message="Monitor is not running for this user")

    services.supervisor.stop_polling(user_id)
    return TickResponse(message=f"Email polling stopped for {user_id}")


@router.post("/{user_id}/poll", response_model=TickResponse)
async def poll_now(
    user_id: str,
    background_tasks: BackgroundTasks,
    services: MagicCodeServices = Depends(get_services)
):
    """
    Trigger a manual poll.
    Runs in background and returns immediately.
    """
    await _require_authenticated(services, user_id)
    background_tasks.add_task(services.supervisor.run_tick, user_id)
    return TickResponse(message="Email poll started in background")


@router.get("/checked", response_model=List[CheckedEmailResponse])
def list_checked_emails(
    user: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
    services: MagicCodeServices = Depends(get_services)
):
    """List checked emails"""
    return services.ledger.list_checked(user_id=user, limit=limit)
