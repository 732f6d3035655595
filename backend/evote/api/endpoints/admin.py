"""
Admin authentication API endpoints.
"""
import logging
from datetime import timedelta

from fastapi import APIRouter, HTTPException, status

from evote.api.deps import ADMIN_ROLE
from evote.core.config import settings
from evote.core.security import create_access_token, verify_admin_credentials
from evote.schemas.sync import AdminLoginRequest, TokenResponse


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/login", response_model=TokenResponse)
async def admin_login(request: AdminLoginRequest) -> TokenResponse:
    """
    Log in to the admin console and get an access token.
    """
    if not verify_admin_credentials(request.username, request.password):
        logger.warning("Failed admin login attempt")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    expires = timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
    access_token = create_access_token(
        data={"sub": request.username, "role": ADMIN_ROLE},
        expires_delta=expires
    )

    return TokenResponse(
        access_token=access_token,
        token_type="bearer",
        expires_in=int(expires.total_seconds()),
        role=ADMIN_ROLE,
    )
