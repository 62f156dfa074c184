"""
Magic Code API Endpoints
The read surface used by the web app and the browser extension
"""
from typing import List
from fastapi import APIRouter, Depends, Query

from app.api.deps import get_services
from app.schemas.magic_code import MagicCodeResponse
from app.services.wiring import MagicCodeServices

router = APIRouter(prefix="/codes", tags=["codes"])


@router.get("", response_model=List[MagicCodeResponse])
@router.get("/", response_model=List[MagicCodeResponse], include_in_schema=False)
def list_codes(
    user: str = Query(..., min_length=1, description="User id"),
    limit: int = Query(50, ge=1, le=100),
    services: MagicCodeServices = Depends(get_services)
):
    """Most recent codes for a user, newest first"""
    return services.code_store.list_recent(user, limit=limit)
