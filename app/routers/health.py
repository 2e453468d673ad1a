"""
Health Check Router
"""
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Request

from app.core.auth import get_optional_account
from app.core.responses import ok
from app.models.user import UserInDB

router = APIRouter()


@router.get("/health")
def health_check(request: Request, account: Optional[UserInDB] = Depends(get_optional_account)):
    """
    Returns API status and whether the caller presented a valid token.
    """
    return ok({
        "status": "healthy",
        "service": request.app.state.settings.PROJECT_NAME,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "authenticated": account is not None,
        "user_id": account.user_id if account else None,
    })
