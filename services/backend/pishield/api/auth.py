"""
PiShield v1 - Auth Routes
Proxies login/signup/logout to Supabase Auth.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials

from pishield.api.deps import get_auth_client
from pishield.schemas import LoginRequest, LoginResponse, MessageResponse, SignupRequest, UserResponse
from pishield.security import AuthError, Principal, SupabaseAuthClient, bearer_scheme, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/login", response_model=LoginResponse)
async def login(payload: LoginRequest, auth: SupabaseAuthClient = Depends(get_auth_client)):
    """Password login. Returns the user and session tokens."""
    try:
        session = await auth.sign_in(payload.email, payload.password)
    except AuthError as e:
        logger.warning(f"Login failed for {payload.email}: {e.message}")
        raise HTTPException(status_code=e.status_code, detail=e.message)

    logger.info(f"User {payload.email} logged in successfully")
    return LoginResponse(
        user=session.get("user") or {},
        token=session["access_token"],
        refresh_token=session.get("refresh_token"),
    )


@router.post("/signup", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def signup(payload: SignupRequest, auth: SupabaseAuthClient = Depends(get_auth_client)):
    """Create a confirmed user."""
    try:
        user = await auth.create_user(payload.email, payload.password, payload.name)
    except AuthError as e:
        logger.warning(f"Signup failed for {payload.email}: {e.message}")
        raise HTTPException(status_code=e.status_code, detail=e.message)

    logger.info(f"New user created: {payload.email}")
    return UserResponse(user=user)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    auth: SupabaseAuthClient = Depends(get_auth_client),
):
    """Revoke the current session if a token is presented. Always succeeds."""
    if credentials is not None and credentials.credentials:
        try:
            await auth.sign_out(credentials.credentials)
        except AuthError as e:
            logger.warning(f"Logout failed: {e.message}")
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=UserResponse)
async def me(user: Principal = Depends(get_current_user)):
    """Profile of the bearer token's owner."""
    return UserResponse(user=user.user or {"id": user.id, "email": user.email})
