"""
Shared API dependencies
"""
from fastapi import Request

from app.services.wiring import MagicCodeServices


def get_services(request: Request) -> MagicCodeServices:
    """Services built for this application instance"""
    return request.app.state.services
