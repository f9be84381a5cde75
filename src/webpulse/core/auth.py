"""
Authentication dependencies.

- Dashboard: optional HTTP basic auth from configuration
- Admin endpoints: bearer admin token
"""

import secrets
from typing import Optional

import structlog
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBasic, HTTPBasicCredentials, HTTPBearer

from ..config import Settings, get_settings
from .exceptions import AuthenticationError

logger = structlog.get_logger(__name__)
bearer = HTTPBearer(auto_error=False)
basic = HTTPBasic(auto_error=False)


def _matches(supplied: str, expected: str) -> bool:
    return secrets.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8"))


def _settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


async def authenticate_dashboard(
    request: Request,
    credentials: Optional[HTTPBasicCredentials] = Depends(basic),
) -> Optional[str]:
    """
    Gate dashboard routes behind basic auth when a user is configured.

    Returns the authenticated user name, or None when auth is disabled.
    """
    dashboard = _settings(request).dashboard
    if not dashboard.auth_enabled:
        return None

    challenge = {"WWW-Authenticate": "Basic"}
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Auth required",
            headers=challenge,
        )

    user_ok = _matches(credentials.username, dashboard.basic_auth_user)
    pass_ok = _matches(credentials.password, dashboard.basic_auth_pass)
    if not (user_ok and pass_ok):
        logger.warning("Dashboard authentication failed", username=credentials.username)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Bad credentials",
            headers=challenge,
        )

    return credentials.username


async def authenticate_admin_token(
    request: Request,
    token: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
) -> str:
    """
    Authenticate the admin bearer token.

    Admin endpoints are disabled entirely while no admin token is configured.
    """
    if not token or not token.credentials:
        raise AuthenticationError("Missing authentication token")

    admin_token = _settings(request).security.admin_token
    token_value = token.credentials.strip()

    if not admin_token or not _matches(token_value, admin_token):
        logger.warning(
            "Admin authentication failed",
            token=token_value[:8] + "..." if len(token_value) >= 8 else "invalid",
        )
        raise AuthenticationError("Invalid admin token")

    return token_value
