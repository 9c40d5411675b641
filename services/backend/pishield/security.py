"""
PiShield v1 - Security Utilities
Bearer-token verification against Supabase Auth (GoTrue) plus the thin
login/signup/logout calls the dashboard needs.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from pishield.config import settings

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """Auth request rejected or auth service unreachable."""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AuthenticationError(AuthError):
    """Invalid or expired credentials."""

    def __init__(self, message: str = "Invalid or expired token"):
        super().__init__(message, status_code=401)


@dataclass
class Principal:
    """Authenticated identity resolved from a bearer token."""
    id: str
    email: Optional[str] = None
    user: Dict[str, Any] = field(default_factory=dict)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        for key in ("error_description", "msg", "message", "error"):
            if body.get(key):
                return str(body[key])
    return f"HTTP {response.status_code}"


class SupabaseAuthClient:
    """
    Async Supabase Auth client using httpx.
    Reuses a single AsyncClient for connection pooling.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        service_key: Optional[str] = None,
        timeout: Optional[int] = None,
    ):
        self._base_url = (base_url or settings.supabase_url).rstrip("/")
        self._service_key = service_key if service_key is not None else settings.supabase_service_role_key
        self._timeout = timeout or settings.supabase_timeout_seconds
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(base_url=f"{self._base_url}/auth/v1", timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _headers(self, bearer: Optional[str] = None) -> Dict[str, str]:
        return {
            "apikey": self._service_key,
            "Authorization": f"Bearer {bearer or self._service_key}",
        }

    async def verify_token(self, token: str) -> Principal:
        """
        Exchange a bearer token for the principal it belongs to.
        Raises AuthenticationError if the token is rejected.
        """
        if not token:
            raise AuthenticationError("Authorization token required")

        client = await self._get_client()
        try:
            response = await client.get("/user", headers=self._headers(token))
        except httpx.HTTPError as e:
            logger.error(f"Token verification request failed: {e}")
            raise AuthenticationError() from e

        if response.status_code != 200:
            logger.debug(f"Token rejected: {_error_message(response)}")
            raise AuthenticationError()

        try:
            user = response.json()
        except ValueError as e:
            logger.error(f"Token verification returned a malformed body: {e}")
            raise AuthenticationError() from e

        if not isinstance(user, dict) or not user.get("id"):
            raise AuthenticationError()
        return Principal(id=user["id"], email=user.get("email"), user=user)

    async def sign_in(self, email: str, password: str) -> Dict[str, Any]:
        """Password login. Returns the GoTrue session payload."""
        client = await self._get_client()
        try:
            response = await client.post(
                "/token",
                params={"grant_type": "password"},
                json={"email": email, "password": password},
                headers=self._headers(),
            )
        except httpx.HTTPError as e:
            logger.error(f"Login request failed: {e}")
            raise AuthError("Auth service unavailable") from e

        if response.status_code != 200:
            raise AuthenticationError(_error_message(response))
        return response.json()

    async def create_user(self, email: str, password: str, name: Optional[str] = None) -> Dict[str, Any]:
        """Create an auto-confirmed user through the admin API."""
        client = await self._get_client()
        try:
            response = await client.post(
                "/admin/users",
                json={
                    "email": email,
                    "password": password,
                    "email_confirm": True,
                    "user_metadata": {"name": name},
                },
                headers=self._headers(),
            )
        except httpx.HTTPError as e:
            logger.error(f"Signup request failed: {e}")
            raise AuthError("Auth service unavailable") from e

        if response.status_code not in (200, 201):
            raise AuthError(_error_message(response), status_code=400)
        return response.json()

    async def sign_out(self, token: str) -> None:
        """Revoke the session behind an access token."""
        client = await self._get_client()
        try:
            response = await client.post("/logout", headers=self._headers(token))
        except httpx.HTTPError as e:
            logger.error(f"Logout request failed: {e}")
            raise AuthError("Auth service unavailable") from e

        if response.status_code not in (200, 204):
            raise AuthError(_error_message(response), status_code=response.status_code)


bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Principal:
    """
    Resolve the principal from the Authorization header.
    Raises 401 if the header is missing or the token is rejected.
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization token required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    verifier = request.app.state.auth
    try:
        return await verifier.verify_token(credentials.credentials)
    except AuthenticationError as e:
        logger.error(f"Token verification failed: {e.message}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )


# Dependency for protected routes
current_user_dependency = Depends(get_current_user)
