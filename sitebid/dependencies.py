"""
sitebid/dependencies.py

Reusable FastAPI dependencies: per-request connection, service and caller.
"""

from __future__ import annotations

from typing import Generator, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from sitebid.auth_context import CallerContext
from sitebid.db import DbConnection, open_connection
from sitebid.repository import Repository
from sitebid.service import MarketplaceService

# auto_error=False: a missing header is reported as InvalidAssertion (401)
# by the identity resolver instead of FastAPI's generic 403
security = HTTPBearer(auto_error=False)


def get_db() -> Generator[DbConnection, None, None]:
    """One connection per request, closed when the response is sent."""
    conn = open_connection()
    try:
        yield conn
    finally:
        conn.close()


def get_service(conn: DbConnection = Depends(get_db)) -> MarketplaceService:
    return MarketplaceService(Repository(conn))


def require_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    service: MarketplaceService = Depends(get_service),
) -> CallerContext:
    """
    FastAPI dependency resolving the bearer token to a CallerContext.

    Usage in routes:
        @router.get("/api/projects")
        def list_projects(caller: CallerContext = Depends(require_caller)):
            ...

    Raises:
        AuthError(InvalidAssertion | InactiveAccount): mapped to 401/403 in main.py
    """
    token = credentials.credentials if credentials is not None else None
    return service.authenticate(token)
