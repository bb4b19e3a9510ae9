"""
API Schemas — Request and Response Models

Pydantic models for the AITA Judge API.
"""

from __future__ import annotations

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


def _not_blank(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must not be blank")
    return value


# ============================================================
# AUTH
# ============================================================

class RegisterRequest(BaseModel):
    """POST /api/auth/register request body."""
    username: str = Field(..., min_length=3, max_length=50)
    email: str = Field(..., min_length=3, max_length=254)
    password: str = Field(..., min_length=6, max_length=256)

    @field_validator("username", "email")
    @classmethod
    def _strip(cls, value: str) -> str:
        return _not_blank(value)


class LoginRequest(BaseModel):
    """POST /api/auth/login request body. `username` may be an email."""
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class UserResponse(BaseModel):
    id: int
    username: str
    email: str
    is_admin: bool = False
    created_at: Optional[str] = None


class AuthResponse(BaseModel):
    message: str
    user: UserResponse


class MessageResponse(BaseModel):
    message: str


# ============================================================
# JUDGMENTS
# ============================================================

class JudgeRequest(BaseModel):
    """POST /api/judge request body — judge without saving."""
    situation: str = Field(..., min_length=1, max_length=20_000)
    follow_up_context: Optional[str] = Field(None, max_length=20_000)

    @field_validator("situation")
    @classmethod
    def _strip_situation(cls, value: str) -> str:
        return _not_blank(value)

    @field_validator("follow_up_context")
    @classmethod
    def _strip_follow_up(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None


class JudgmentResponse(BaseModel):
    verdict: str
    judgment: str
    score: int = Field(..., ge=1, le=10)
    reasoning: str
    provenance: str
    provider_name: Optional[str] = None
    provider_error: Optional[str] = None
    tier: Optional[str] = None


# ============================================================
# SUBMISSIONS
# ============================================================

class SubmissionCreateRequest(BaseModel):
    """POST /api/submissions request body."""
    model_config = ConfigDict(populate_by_name=True)

    situation: str = Field(..., min_length=1, max_length=20_000)
    is_anonymous: bool = Field(False, alias="isAnonymous")
    is_public: bool = Field(False, alias="isPublic")

    @field_validator("situation")
    @classmethod
    def _strip_situation(cls, value: str) -> str:
        return _not_blank(value)


class SubmissionCreateResponse(BaseModel):
    id: int
    judgment: str
    score: int
    reasoning: str
    is_anonymous: bool
    is_public: bool
    ai_used: bool
    ai_provider: Optional[str] = None
    ai_error: Optional[str] = None
    message: str = "Submission created successfully"


class FollowUpRequest(BaseModel):
    """POST /api/submissions/{id}/followup request body."""
    model_config = ConfigDict(populate_by_name=True)

    follow_up_context: str = Field(
        ..., min_length=1, max_length=20_000, alias="followUpContext",
    )

    @field_validator("follow_up_context")
    @classmethod
    def _strip_follow_up(cls, value: str) -> str:
        return _not_blank(value)


class FollowUpResponse(BaseModel):
    id: int
    judgment: str
    score: int
    reasoning: str
    follow_up_context: str
    ai_used: bool
    ai_provider: Optional[str] = None
    ai_error: Optional[str] = None
    message: str = "Follow-up submitted and re-analyzed successfully"


class Submission(BaseModel):
    id: int
    user_id: Optional[int] = None
    situation: str
    follow_up_context: Optional[str] = None
    judgment: Optional[str] = None
    score: Optional[int] = None
    reasoning: Optional[str] = None
    is_anonymous: bool = False
    is_public: bool = True
    created_at: Optional[str] = None
    username: Optional[str] = None
    email: Optional[str] = None


class SubmissionListResponse(BaseModel):
    submissions: list[Submission]
    total: int
    limit: int
    offset: int


# ============================================================
# ADMIN
# ============================================================

class AdminUser(UserResponse):
    submission_count: int = 0


class AdminUsersResponse(BaseModel):
    users: list[AdminUser]


class UserStats(BaseModel):
    username: str
    submission_count: int
    avg_score: Optional[float] = None


class StatsResponse(BaseModel):
    total_users: int
    total_submissions: int
    average_score: float
    yta_count: int
    nta_count: int
    submissions_by_user: list[UserStats]


# ============================================================
# RULES / HEALTH
# ============================================================

class TierInfo(BaseModel):
    position: int
    id: str
    description: str
    verdict: str
    judgment: str
    score: int
    responses: int


class RulesResponse(BaseModel):
    total: int
    tiers: list[TierInfo]


class HealthResponse(BaseModel):
    status: str
    version: str
    ai_configured: bool
    llm_provider: Optional[str] = None
    circuit_state: Optional[str] = None
    submissions: int
