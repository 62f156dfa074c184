"""
Monitor Schemas - Poll scheduler status and ledger listing
"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel


class MonitorStatusResponse(BaseModel):
    """Email monitor status"""
    poll_interval_seconds: float
    active_users: List[str]
    retention_sweep_running: bool
    retention_days: int


class CheckedEmailResponse(BaseModel):
    """One ledger row"""
    id: int
    user_id: str
    email_id: str
    has_code: bool
    checked_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TickResponse(BaseModel):
    message: str
