"""
User Credential API Endpoints
Token hand-off from the login layer, logout and authentication status
"""
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.concurrency import run_in_threadpool

from app.api.deps import get_services
from app.schemas.user import CredentialUpdate, UserStatusResponse
from app.services.credential_store import STATUS_UNAUTHENTICATED
from app.services.wiring import MagicCodeServices

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/{user_id}/status", response_model=UserStatusResponse)
def get_user_status(user_id: str, services: MagicCodeServices = Depends(get_services)):
    """
    Whether the user is signed in, needs to sign in again after Google
    rejected their token, or is unknown.
    """
    return UserStatusResponse(
        user_id=user_id,
        status=services.credential_store.status(user_id),
        is_polling=services.supervisor.is_polling(user_id)
    )


@router.put("/{user_id}/credentials", response_model=UserStatusResponse)
async def set_credentials(
    user_id: str,
    payload: CredentialUpdate,
    services: MagicCodeServices = Depends(get_services)
):
    """Store a freshly issued token pair and (re)start polling the mailbox"""
    await run_in_threadpool(
        services.credential_store.set,
        user_id,
        payload.access_token,
        payload.refresh_token,
        payload.email
    )
    services.supervisor.start_polling(user_id)

    return UserStatusResponse(
        user_id=user_id,
        status=await run_in_threadpool(services.credential_store.status, user_id),
        is_polling=True
    )


@router.delete("/{user_id}/credentials", status_code=status.HTTP_200_OK)
async def clear_credentials(user_id: str, services: MagicCodeServices = Depends(get_services)):
    """Log out: drop the stored tokens and stop polling"""
    current = await run_in_threadpool(services.credential_store.status, user_id)
    if current == STATUS_UNAUTHENTICATED:
        raise HTTPException(status_code=404, detail="User not found")

    await run_in_threadpool(services.credential_store.clear, user_id)
    return {"message": "Logged out successfully"}
