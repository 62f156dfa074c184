"""
User Credential Schemas - Token hand-off from the login layer
"""
from typing import Literal, Optional
from pydantic import BaseModel, Field


class CredentialUpdate(BaseModel):
    """Token pair issued by the OAuth authorization-code exchange"""
    access_token: str = Field(..., min_length=1)
    refresh_token: str = Field(..., min_length=1)
    email: Optional[str] = None


class UserStatusResponse(BaseModel):
    """
    Authentication state of a user:
    - authenticated: tokens stored, mailbox is polled
    - needs_reauth: tokens were rejected by Google and cleared
    - unauthenticated: unknown user
    """
    user_id: str
    status: Literal["authenticated", "needs_reauth", "unauthenticated"]
    is_polling: bool = False
