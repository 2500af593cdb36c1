# ---------------------------------------------------------
# sitebid/main.py
# SiteBid - Construction Marketplace Backend
#
# Run: uvicorn sitebid.main:app --reload (from repo root)
#
# - FastAPI + SQLite (PostgreSQL when DATABASE_URL is set)
# - /api/auth        : register, login, profile
# - /api/users       : contractor directory, public profiles
# - /api/projects    : homeowner projects (draft -> open -> in_progress -> completed)
# - /api/bids        : contractor bids, withdraw / reject / accept cascade
# - /api/milestones  : project milestones with actual date stamping
# ---------------------------------------------------------

from __future__ import annotations

from typing import Dict

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sitebid.config import CORS_ORIGINS, IS_DEV, IS_PROD
from sitebid.db import get_db_connection, init_schema
from sitebid.errors import AuthReason, SiteBidError, WorkflowReason
from sitebid.routes_auth import router as auth_router
from sitebid.routes_bids import router as bids_router
from sitebid.routes_milestones import router as milestones_router
from sitebid.routes_projects import router as projects_router
from sitebid.routes_users import router as users_router


# Reason tag -> HTTP status
STATUS_BY_REASON: Dict[str, int] = {
    AuthReason.INVALID_ASSERTION.value: 401,
    AuthReason.INACTIVE_ACCOUNT.value: 403,
    AuthReason.NOT_OWNER.value: 403,
    AuthReason.ROLE_NOT_PERMITTED.value: 403,
    AuthReason.RESOURCE_NOT_OPEN.value: 400,
    AuthReason.DUPLICATE_BID.value: 409,
    WorkflowReason.PROJECT_ALREADY_COMMITTED.value: 409,
    WorkflowReason.INVALID_TRANSITION.value: 409,
    "NotFound": 404,
    "Conflict": 409,
}


def status_for(error: SiteBidError) -> int:
    return STATUS_BY_REASON.get(error.tag, 400)


def init_db() -> None:
    with get_db_connection() as conn:
        init_schema(conn)


# ---------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------
app = FastAPI(title="SiteBid Backend", version="0.1")

# CORS configuration from config module
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS if IS_PROD else ["*"],  # Restrict origins in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(SiteBidError)
async def handle_sitebid_error(request: Request, exc: SiteBidError) -> JSONResponse:
    status_code = status_for(exc)
    if IS_DEV:
        print(f"[API] {request.method} {request.url.path} -> {status_code} {exc.tag}: {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.tag, "detail": exc.message},
    )


app.include_router(auth_router)
app.include_router(users_router)
app.include_router(projects_router)
app.include_router(bids_router)
app.include_router(milestones_router)

init_db()


# ---------------------------------------------------------
# Routes
# ---------------------------------------------------------
@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}
