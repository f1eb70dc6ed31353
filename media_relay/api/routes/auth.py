"""
Admin login.

A single shared password guards the admin side of the gallery. A
successful login returns the configured admin token, which admin-only
endpoints expect as a bearer token.
"""

import hmac
import logging

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from ..dependencies import SettingsDep

logger = logging.getLogger(__name__)

router = APIRouter()


class LoginRequest(BaseModel):
    password: str = ""


class LoginResponse(BaseModel):
    success: bool = True
    token: str


@router.post(
    "/login",
    response_model=LoginResponse,
    summary="Admin login",
    responses={401: {"description": "Invalid password"}},
)
def login(request: LoginRequest, settings: SettingsDep) -> LoginResponse:
    if not settings.admin_password:
        logger.warning("Login attempted but ADMIN_PASSWORD is not configured")
    elif hmac.compare_digest(
        request.password.encode("utf-8"),
        settings.admin_password.encode("utf-8"),
    ):
        logger.info("Admin login succeeded")
        return LoginResponse(token=settings.admin_token)

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid password",
    )
