"""
Database Models
"""
from app.models.user import User
from app.models.checked_email import CheckedEmail
from app.models.magic_code import MagicCode

__all__ = [
    "User",
    "CheckedEmail",
    "MagicCode",
]
