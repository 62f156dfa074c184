"""
Magic Code Schemas
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class MagicCodeResponse(BaseModel):
    """A stored code, as read by the web app and the extension"""
    id: int
    user_id: str
    code: str
    website: Optional[str] = None
    email_id: str
    created_at: datetime

    class Config:
        from_attributes = True
