"""
Pydantic Schemas
"""
from app.schemas.magic_code import MagicCodeResponse
from app.schemas.user import CredentialUpdate, UserStatusResponse
from app.schemas.monitor import CheckedEmailResponse, MonitorStatusResponse, TickResponse

__all__ = [
    # Magic Codes
    "MagicCodeResponse",
    # Users
    "CredentialUpdate", "UserStatusResponse",
    # Monitor
    "CheckedEmailResponse", "MonitorStatusResponse", "TickResponse",
]
