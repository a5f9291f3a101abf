"""API authentication.

Clients authenticate with the shared key in either header:
- ``X-API-Key: <key>``
- ``Authorization: Bearer <key>``

Auth is active only when ``API_AUTH_ENABLED=true`` and ``API_AUTH_KEY`` is set.
"""

import hmac

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer

from consensus_oracle.config import OracleSettings
from consensus_oracle.logging import get_logger

logger = get_logger(__name__)

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)
bearer_scheme = HTTPBearer(auto_error=False)

# Reachable without a key even when auth is enabled
PUBLIC_ENDPOINTS = {
    "/",
    "/api/oracle/health",
    "/docs",
    "/openapi.json",
}


class AuthConfig:
    """Authentication configuration."""

    def __init__(self, settings: OracleSettings) -> None:
        self._api_key: str = settings.api_auth_key
        self._auth_enabled: bool = settings.api_auth_enabled

    def is_enabled(self) -> bool:
        return self._auth_enabled and bool(self._api_key)

    def validate_api_key(self, api_key: str) -> bool:
        """Constant-time comparison against the configured key."""
        if not self._api_key:
            return False
        return hmac.compare_digest(api_key.encode(), self._api_key.encode())


async def get_api_key(
    api_key: str | None = Security(api_key_header),
    bearer: HTTPAuthorizationCredentials | None = Security(bearer_scheme),
) -> str | None:
    if api_key:
        return api_key
    if bearer and bearer.credentials:
        return bearer.credentials
    return None


async def verify_auth(
    request: Request,
    api_key: str | None = Depends(get_api_key),
) -> bool:
    """Reject the request with 401 unless auth is off or the key matches."""
    auth_config: AuthConfig = request.app.state.auth_config
    if not auth_config.is_enabled() or request.url.path in PUBLIC_ENDPOINTS:
        return True

    client_ip = request.client.host if request.client else "unknown"
    endpoint = request.url.path

    if not api_key:
        logger.warning("Auth failed: missing API key from %s for %s", client_ip, endpoint)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API key required",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    if not auth_config.validate_api_key(api_key):
        logger.warning("Auth failed: invalid API key from %s for %s", client_ip, endpoint)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    logger.debug("Auth success: %s -> %s", client_ip, endpoint)
    return True
