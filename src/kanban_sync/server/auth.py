"""Optional bearer-token authentication for the board API."""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import jwt
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from loguru import logger

_bearer = HTTPBearer(auto_error=False)


class AuthConfig:
    """Authentication configuration."""

    def __init__(self) -> None:
        """Initialize auth config from environment."""
        # Disabled by default for local use
        self.enabled = os.getenv("KANBAN_AUTH_ENABLED", "false").lower() == "true"

        self.username = os.getenv("KANBAN_USERNAME", "admin")
        self.password = os.getenv("KANBAN_PASSWORD", "admin")

        self.secret_key = os.getenv("KANBAN_SECRET_KEY", "dev-secret-change-in-production")
        self.algorithm = "HS256"
        self.access_token_expire_minutes = int(os.getenv("KANBAN_TOKEN_EXPIRE_MINUTES", "1440"))


def create_access_token(config: AuthConfig, subject: str, expires_delta: Optional[timedelta] = None) -> str:
    """Create a signed JWT for ``subject``.

    Args:
        config: Active auth configuration (secret and algorithm).
        subject: Username stored in the ``sub`` claim.
        expires_delta: Lifetime; defaults to the configured expiry.

    Returns:
        Encoded JWT token.
    """
    lifetime = expires_delta or timedelta(minutes=config.access_token_expire_minutes)
    claims = {"sub": subject, "exp": datetime.now(timezone.utc) + lifetime}
    return jwt.encode(claims, config.secret_key, algorithm=config.algorithm)


def decode_access_token(config: AuthConfig, token: str) -> Optional[str]:
    """Return the username in ``token``, or ``None`` if it is invalid or expired."""
    try:
        payload = jwt.decode(token, config.secret_key, algorithms=[config.algorithm])
    except jwt.ExpiredSignatureError:
        logger.debug("Rejected expired token")
        return None
    except jwt.InvalidTokenError:
        logger.debug("Rejected invalid token")
        return None
    subject = payload.get("sub")
    return str(subject) if subject else None


def get_auth_config(request: Request) -> AuthConfig:
    return request.app.state.auth_config


def require_user(
    config: AuthConfig = Depends(get_auth_config),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Optional[str]:
    """FastAPI dependency guarding the ``/api`` routes.

    Returns the authenticated username, or ``None`` when auth is disabled.
    """
    if not config.enabled:
        return None
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated", headers={"WWW-Authenticate": "Bearer"})
    username = decode_access_token(config, credentials.credentials)
    if username is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token", headers={"WWW-Authenticate": "Bearer"})
    return username


def verify_credentials(
    config: AuthConfig,
    username: str,
    password: str,
    lookup: Optional[Callable[[str, str], object]] = None,
) -> bool:
    """Check the configured admin credentials, then board users via ``lookup``."""
    if username == config.username and password == config.password:
        return True
    return lookup is not None and lookup(username, password) is not None
