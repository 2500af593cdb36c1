"""
sitebid/auth_context.py

Identity Context: turns a verified identity assertion (JWT bearer token) into
the CallerContext every other component receives.

Contains:
- CallerContext: Immutable (user_id, role, is_active) caller identity
- resolve: Assertion -> CallerContext, or AuthError(InvalidAssertion/InactiveAccount)
- create_access_token: Token issuance for login/register
- hash_password / verify_password: Salted PBKDF2 password hashing

No component downstream of resolve() looks at raw credentials again.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from pydantic import BaseModel

from sitebid.config import (
    ACCESS_TOKEN_MINUTES,
    ALGORITHM,
    IS_DEV,
    PASSWORD_HASH_ITERATIONS,
    SECRET_KEY,
)
from sitebid.errors import AuthError, AuthReason
from sitebid.models import UserRole
from sitebid.repository import Repository


# ---------------------------------------------------------
# CallerContext - the only identity the core ever sees
# ---------------------------------------------------------
class CallerContext(BaseModel):
    """
    Immutable caller identity derived from server-side token verification.
    Never trust user ids or roles from request bodies or query params.

    Fields:
        user_id: User ID (token subject, confirmed against the users table)
        role: User role from the users table (homeowner/contractor/project_manager)
        is_active: Always True for a resolved caller
    """
    user_id: str
    role: UserRole
    is_active: bool = True

    class Config:
        frozen = True


# ---------------------------------------------------------
# JWT Token Issuance / Verification
# ---------------------------------------------------------
def create_access_token(user_id: str, role: str, now: Optional[datetime] = None) -> str:
    """Issue a signed access token whose subject is the user id."""
    issued = now or datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "role": role.value if isinstance(role, UserRole) else str(role),
        "iat": int(issued.timestamp()),
        "exp": int((issued + timedelta(minutes=ACCESS_TOKEN_MINUTES)).timestamp()),
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def verify_token(token: str) -> dict:
    """
    Verify JWT access token and return decoded payload.

    Raises:
        AuthError(InvalidAssertion): If token is expired, malformed or badly signed
    """
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthError(AuthReason.INVALID_ASSERTION, "Token expired")
    except jwt.InvalidTokenError:
        raise AuthError(AuthReason.INVALID_ASSERTION, "Invalid token")


def resolve(assertion: Optional[str], repo: Repository) -> CallerContext:
    """
    Resolve an identity assertion to a CallerContext.

    Process:
    1. Verify JWT signature and expiration
    2. Extract user id (sub) from the payload
    3. Fetch the user record (database is the source of truth for role)
    4. Reject deactivated users

    Raises:
        AuthError(InvalidAssertion): Missing/invalid token, no subject, unknown user
        AuthError(InactiveAccount): User exists but is deactivated
    """
    if not assertion:
        raise AuthError(AuthReason.INVALID_ASSERTION, "Access token is required")

    payload = verify_token(assertion)
    user_id = payload.get("sub")

    if not user_id:
        print("[AUTH] Missing user_id in token payload")
        raise AuthError(AuthReason.INVALID_ASSERTION, "Invalid token payload")

    row = repo.get_identity(str(user_id))
    if not row:
        print(f"[AUTH] User not found: user_id={user_id}")
        raise AuthError(AuthReason.INVALID_ASSERTION, "User not found")

    if not row["is_active"]:
        print(f"[AUTH] Inactive user attempted access: user_id={user_id}")
        raise AuthError(AuthReason.INACTIVE_ACCOUNT, "Account inactive")

    ctx = CallerContext(user_id=row["id"], role=row["role"], is_active=True)

    if IS_DEV:
        print(f"[AUTH] Authenticated: user_id={ctx.user_id}, role={ctx.role.value}")

    return ctx


# ---------------------------------------------------------
# Password hashing
# ---------------------------------------------------------
def hash_password(password: str, salt: Optional[str] = None) -> str:
    """Return 'pbkdf2_sha256$<iterations>$<salt>$<hex digest>'."""
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode(), salt.encode(), PASSWORD_HASH_ITERATIONS
    ).hex()
    return f"pbkdf2_sha256${PASSWORD_HASH_ITERATIONS}${salt}${digest}"


def verify_password(password: str, password_hash: str) -> bool:
    try:
        scheme, iterations, salt, expected = password_hash.split("$", 3)
        rounds = int(iterations)
    except (AttributeError, ValueError):
        return False
    if scheme != "pbkdf2_sha256" or rounds < 1:
        return False
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode(), salt.encode(), rounds
    ).hex()
    return hmac.compare_digest(digest, expected)
