"""
AITA Judge API — Main Application

POST /api/auth/register              — Create an account and sign in
POST /api/auth/login                 — Sign in (username or email)
POST /api/auth/logout                — Sign out
GET  /api/auth/me                    — Current account
POST /api/submissions                — Judge a situation and save it
GET  /api/submissions                — Feed (public, own, or "mine")
GET  /api/submissions/{id}           — One submission
POST /api/submissions/{id}/followup  — Add context and re-judge
POST /api/judge                      — Judge without saving
GET  /api/rules                      — The rule cascade, in order
GET  /api/admin/users                — Accounts with submission counts
GET  /api/admin/stats                — Aggregate judgment stats
GET  /api/admin/submissions          — Every submission
GET  /health                         — Health check
"""

from __future__ import annotations

import os
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Path as PathParam, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware
from starlette.requests import Request

from aita import __version__
from aita.auth import (
    current_user_id,
    hash_password,
    login_session,
    logout_session,
    require_admin,
    require_user,
    verify_password,
)
from aita.config import settings
from aita.judge import judge
from aita.llm import LLMProvider
from aita.llm.factory import get_configured_provider
from aita.logging import get_logger, setup_logging
from aita.rate_limit import check_rate_limit
from aita.rules import rule_classifier
from aita.schemas.submissions import (
    AdminUsersResponse,
    AuthResponse,
    FollowUpRequest,
    FollowUpResponse,
    HealthResponse,
    JudgeRequest,
    JudgmentResponse,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    RulesResponse,
    StatsResponse,
    Submission,
    SubmissionCreateRequest,
    SubmissionCreateResponse,
    SubmissionListResponse,
    UserResponse,
)
from aita.store import DuplicateUserError, SubmissionStore, get_store

logger = get_logger("api")

# Largest rowid SQLite can store
_MAX_ROW_ID = 2**63 - 1


# ============================================================
# AI PROVIDER (lazy)
# ============================================================

_llm: Optional[LLMProvider] = None
_llm_loaded = False


def get_llm() -> Optional[LLMProvider]:
    """FastAPI dependency — the configured provider, or None for rules only."""
    global _llm, _llm_loaded
    if not _llm_loaded:
        _llm = get_configured_provider()
        _llm_loaded = True
    return _llm


# ============================================================
# STARTUP / SHUTDOWN
# ============================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the store and reconcile admin accounts on startup."""
    setup_logging()

    if os.getenv("RENDER", "").lower() == "true" and not os.getenv("AITA_SESSION_SECRET"):
        logger.warning(
            "RUNNING ON RENDER WITH THE DEFAULT SESSION SECRET — "
            "set AITA_SESSION_SECRET so session cookies cannot be forged."
        )

    store = get_store()
    promoted = store.promote_admins(settings.ADMIN_USERNAMES)
    llm = get_llm()
    logger.info(
        "AITA Judge API starting",
        extra={
            "provider": llm.name if llm else None,
            "admins_promoted": promoted,
        },
    )
    if llm is None:
        logger.info("No AI provider configured — judgments use the rule cascade")
    yield
    logger.info("AITA Judge API shutting down")


app = FastAPI(
    title="AITA Judge API",
    description="Am I the Asshole? judgments from an AI provider or a rule cascade",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    SessionMiddleware,
    secret_key=settings.SESSION_SECRET,
    session_cookie="aita_session",
    max_age=settings.SESSION_MAX_AGE,
    same_site="none" if settings.SESSION_HTTPS_ONLY else "lax",
    https_only=settings.SESSION_HTTPS_ONLY,
)

# CORS: set AITA_CORS_ORIGINS in production (e.g. "https://aita.example.com")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",")],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
    allow_credentials=True,
)


@app.get("/", include_in_schema=False)
async def root():
    return {"message": "AITA Judge API", "version": __version__, "docs": "/docs"}


# ============================================================
# GLOBAL ERROR HANDLER
# ============================================================

@app.exception_handler(Exception)
async def global_error_handler(request: Request, exc: Exception):
    """Log the traceback; the client only gets a generic 500."""
    logger.error(
        f"Unhandled exception: {type(exc).__name__}",
        extra={"error": str(exc), "path": request.url.path, "method": request.method},
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error. The request could not be completed."},
    )


def _rate_key(request: Request, user_id: Optional[int]) -> str:
    if user_id is not None:
        return f"user:{user_id}"
    host = request.client.host if request.client else "unknown"
    return f"ip:{host}"


# ============================================================
# AUTH
# ============================================================

@app.post("/api/auth/register", response_model=AuthResponse)
async def register(
    body: RegisterRequest,
    request: Request,
    store: SubmissionStore = Depends(get_store),
):
    """Create an account and sign it in."""
    try:
        user = store.create_user(
            body.username, body.email, hash_password(body.password),
        )
    except DuplicateUserError as e:
        raise HTTPException(400, str(e))

    login_session(request, user)
    logger.info("User registered", extra={"user_id": user["id"]})
    return {"message": "Registration successful", "user": user}


@app.post("/api/auth/login", response_model=AuthResponse)
async def login(
    body: LoginRequest,
    request: Request,
    store: SubmissionStore = Depends(get_store),
):
    """Sign in with a username or email."""
    user = store.get_user_by_login(body.username)
    if not user or not verify_password(body.password, user["password_hash"]):
        raise HTTPException(401, "Invalid username or password")

    login_session(request, user)
    user.pop("password_hash", None)
    return {"message": "Login successful", "user": user}


@app.post("/api/auth/logout", response_model=MessageResponse)
async def logout(request: Request):
    logout_session(request)
    return {"message": "Logout successful"}


@app.get("/api/auth/me", response_model=UserResponse)
async def me(
    user_id: Optional[int] = Depends(current_user_id),
    store: SubmissionStore = Depends(get_store),
):
    user = store.get_user(user_id) if user_id is not None else None
    if user is None:
        raise HTTPException(401, "Not authenticated")
    return user


# ============================================================
# JUDGMENTS
# ============================================================

@app.post("/api/submissions", response_model=SubmissionCreateResponse)
async def create_submission(
    body: SubmissionCreateRequest,
    user_id: int = Depends(require_user),
    store: SubmissionStore = Depends(get_store),
    llm: Optional[LLMProvider] = Depends(get_llm),
):
    """Judge a situation and save it to the author's account."""
    check_rate_limit(f"user:{user_id}")

    result = await judge(body.situation, llm=llm)
    submission_id = store.create_submission(
        user_id=user_id,
        situation=body.situation,
        judgment=result.judgment,
        score=result.score,
        reasoning=result.reasoning,
        is_anonymous=body.is_anonymous,
        is_public=body.is_public,
    )

    logger.info(
        f"Submission judged: {result.judgment} {result.score}/10",
        extra={
            "submission_id": submission_id,
            "user_id": user_id,
            "verdict": result.judgment,
            "score": result.score,
            "provenance": result.provenance,
        },
    )

    return {
        "id": submission_id,
        "judgment": result.judgment,
        "score": result.score,
        "reasoning": result.reasoning,
        "is_anonymous": body.is_anonymous,
        "is_public": body.is_public,
        "ai_used": result.ai_used,
        "ai_provider": result.provider_name if result.ai_used else None,
        "ai_error": result.provider_error,
    }


@app.get("/api/submissions", response_model=SubmissionListResponse)
async def list_submissions(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    mine: bool = False,
    user_id: Optional[int] = Depends(current_user_id),
    store: SubmissionStore = Depends(get_store),
):
    """The feed as seen by the current viewer."""
    submissions, total = store.list_feed(
        viewer_id=user_id, mine=mine, limit=limit, offset=offset,
    )
    return {
        "submissions": submissions,
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@app.get("/api/submissions/{submission_id}", response_model=Submission)
async def get_submission(
    submission_id: int = PathParam(..., gt=0, le=_MAX_ROW_ID),
    user_id: Optional[int] = Depends(current_user_id),
    store: SubmissionStore = Depends(get_store),
):
    submission = store.get_submission(submission_id)
    if submission is None:
        raise HTTPException(404, "Submission not found")
    if not submission["is_public"] and submission["user_id"] != user_id:
        raise HTTPException(403, "This submission is private")
    return submission


@app.post("/api/submissions/{submission_id}/followup", response_model=FollowUpResponse)
async def add_followup(
    body: FollowUpRequest,
    submission_id: int = PathParam(..., gt=0, le=_MAX_ROW_ID),
    user_id: int = Depends(require_user),
    store: SubmissionStore = Depends(get_store),
    llm: Optional[LLMProvider] = Depends(get_llm),
):
    """Add context to one's own submission and re-judge the whole story."""
    submission = store.get_submission(submission_id)
    if submission is None:
        raise HTTPException(404, "Submission not found")
    if submission["user_id"] != user_id:
        raise HTTPException(403, "You can only add follow-up to your own submissions")

    check_rate_limit(f"user:{user_id}")

    result = await judge(submission["situation"], body.follow_up_context, llm=llm)
    store.update_followup(
        submission_id,
        follow_up_context=body.follow_up_context,
        judgment=result.judgment,
        score=result.score,
        reasoning=result.reasoning,
    )

    logger.info(
        f"Follow-up re-judged: {result.judgment} {result.score}/10",
        extra={
            "submission_id": submission_id,
            "user_id": user_id,
            "verdict": result.judgment,
            "score": result.score,
            "provenance": result.provenance,
        },
    )

    return {
        "id": submission_id,
        "judgment": result.judgment,
        "score": result.score,
        "reasoning": result.reasoning,
        "follow_up_context": body.follow_up_context,
        "ai_used": result.ai_used,
        "ai_provider": result.provider_name if result.ai_used else None,
        "ai_error": result.provider_error,
    }


@app.post("/api/judge", response_model=JudgmentResponse)
async def judge_situation(
    body: JudgeRequest,
    request: Request,
    user_id: Optional[int] = Depends(current_user_id),
    llm: Optional[LLMProvider] = Depends(get_llm),
):
    """Judge a situation without saving it."""
    check_rate_limit(_rate_key(request, user_id))
    result = await judge(body.situation, body.follow_up_context, llm=llm)
    return result.to_dict()


@app.get("/api/rules", response_model=RulesResponse)
async def get_rules():
    """The rule cascade in evaluation order, most severe first."""
    tiers = rule_classifier.get_tiers()
    return {"total": len(tiers), "tiers": tiers}


# ============================================================
# ADMIN
# ============================================================

@app.get("/api/admin/users", response_model=AdminUsersResponse)
async def admin_users(
    admin_id: int = Depends(require_admin),
    store: SubmissionStore = Depends(get_store),
):
    return {"users": store.list_users()}


@app.get("/api/admin/stats", response_model=StatsResponse)
async def admin_stats(
    admin_id: int = Depends(require_admin),
    store: SubmissionStore = Depends(get_store),
):
    return store.get_stats()


@app.get("/api/admin/submissions", response_model=SubmissionListResponse)
async def admin_submissions(
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    admin_id: int = Depends(require_admin),
    store: SubmissionStore = Depends(get_store),
):
    submissions, total = store.list_all_submissions(limit=limit, offset=offset)
    return {
        "submissions": submissions,
        "total": total,
        "limit": limit,
        "offset": offset,
    }


# ============================================================
# HEALTH
# ============================================================

@app.get("/health", response_model=HealthResponse)
async def health(
    store: SubmissionStore = Depends(get_store),
    llm: Optional[LLMProvider] = Depends(get_llm),
):
    """Liveness plus AI provider and circuit breaker state. No auth."""
    breaker = getattr(llm, "circuit_breaker", None)
    return {
        "status": "operational",
        "version": __version__,
        "ai_configured": llm is not None,
        "llm_provider": llm.name if llm else None,
        "circuit_state": breaker.state if breaker else None,
        "submissions": store.get_count(),
    }


# ============================================================
# MIDDLEWARE
# ============================================================

# Request models cap situations at 20k characters
_MAX_BODY_BYTES = 128 * 1024

_SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


def _payload_too_large() -> JSONResponse:
    return JSONResponse(
        status_code=413,
        content={"detail": f"Request body exceeds {_MAX_BODY_BYTES // 1024} KB."},
    )


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-AITA-Version"] = __version__
    for header, value in _SECURITY_HEADERS.items():
        response.headers.setdefault(header, value)
    return response


@app.middleware("http")
async def limit_body_size(request: Request, call_next):
    """413 for oversized bodies, declared or streamed."""
    declared = request.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > _MAX_BODY_BYTES:
        return _payload_too_large()
    if request.method == "POST" and len(await request.body()) > _MAX_BODY_BYTES:
        return _payload_too_large()
    return await call_next(request)


@app.middleware("http")
async def access_log(request: Request, call_next):
    if request.url.path == "/health":
        return await call_next(request)

    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = round((time.perf_counter() - started) * 1000, 1)
    logger.info(
        f"{request.method} {request.url.path} {response.status_code}",
        extra={
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": elapsed_ms,
        },
    )
    return response


def run():
    """Serve the API with uvicorn on the configured host and port."""
    import uvicorn
    uvicorn.run("api.main:app", host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
