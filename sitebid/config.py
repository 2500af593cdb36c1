# sitebid/config.py
# Environment-aware configuration for the SiteBid backend

import os
from typing import List, Literal

# Environment detection
ENV: Literal["dev", "staging", "prod"] = os.environ.get("ENV", "dev")  # type: ignore
IS_DEV = (ENV == "dev")
IS_STAGING = (ENV == "staging")
IS_PROD = (ENV == "prod")

# Identity assertions (JWT bearer tokens)
SECRET_KEY = os.environ.get("SECRET_KEY", "sitebid-dev-only-secret")
ALGORITHM = "HS256"
ACCESS_TOKEN_MINUTES = int(os.environ.get("ACCESS_TOKEN_MINUTES", str(7 * 24 * 60)))

# PBKDF2-SHA256 work factor for stored passwords
PASSWORD_HASH_ITERATIONS = int(os.environ.get("PASSWORD_HASH_ITERATIONS", "200000"))

# Storage: managed Postgres when DATABASE_URL is set, else a local SQLite file
DATABASE_URL = os.environ.get("DATABASE_URL", "").strip()
DATABASE_PATH = os.environ.get("DATABASE_PATH", "sitebid.db")
IS_POSTGRES = DATABASE_URL.startswith(("postgres://", "postgresql://"))
IS_SQLITE = not IS_POSTGRES

# Seconds a SQLite writer waits on a locked database before failing
SQLITE_BUSY_TIMEOUT = float(os.environ.get("SQLITE_BUSY_TIMEOUT", "5"))


def _deployed_origins(fallback: str) -> List[str]:
    """Frontend origins for staging/prod: comma-separated CORS_ORIGINS or a fallback."""
    configured = os.environ.get("CORS_ORIGINS", "")
    if configured:
        return [origin.strip() for origin in configured.split(",") if origin.strip()]
    return [fallback]


# Local web client (dev server)
CORS_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
if IS_STAGING:
    CORS_ORIGINS.extend(_deployed_origins("https://staging.sitebid.app"))
if IS_PROD:
    CORS_ORIGINS.extend(_deployed_origins("https://app.sitebid.app"))

print(f"[CONFIG] Environment: {ENV}")
print(f"[CONFIG] Database: {'PostgreSQL' if IS_POSTGRES else f'SQLite ({DATABASE_PATH})'}")
print(f"[CONFIG] Access token: {ACCESS_TOKEN_MINUTES} minutes")
