"""
Auth — Passwords and Sessions

Passwords are stored as salted PBKDF2-SHA256 hashes, never plaintext.
Sign-in state lives in a signed session cookie (Starlette's
SessionMiddleware); the session only carries the user id and name.

FastAPI dependencies:
  - current_user_id:  the signed-in user id, or None
  - require_user:     401 unless signed in
  - require_admin:    401 unless signed in, 403 unless an admin
"""

from __future__ import annotations

import hashlib
import hmac
import os
import secrets
from typing import Optional

from fastapi import Depends, HTTPException
from starlette.requests import Request

from aita.logging import get_logger
from aita.store import SubmissionStore, get_store

logger = get_logger("auth")

_ALGORITHM = "pbkdf2_sha256"
_ITERATIONS = int(os.getenv("AITA_PASSWORD_ITERATIONS", "260000"))


def hash_password(password: str, iterations: int = _ITERATIONS) -> str:
    """Hash a password as "pbkdf2_sha256$iterations$salt$hash"."""
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode(), salt.encode(), iterations,
    ).hex()
    return f"{_ALGORITHM}${iterations}${salt}${digest}"


def verify_password(password: str, stored: str) -> bool:
    """Check a password against a stored hash. Constant-time compare."""
    if not password or not stored:
        return False
    try:
        algorithm, iterations, salt, digest = stored.split("$", 3)
        rounds = int(iterations)
    except ValueError:
        return False
    if algorithm != _ALGORITHM:
        return False
    candidate = hashlib.pbkdf2_hmac(
        "sha256", password.encode(), salt.encode(), rounds,
    ).hex()
    return hmac.compare_digest(candidate, digest)


# ============================================================
# SESSIONS
# ============================================================

def login_session(request: Request, user: dict) -> None:
    request.session["user_id"] = user["id"]
    request.session["username"] = user["username"]


def logout_session(request: Request) -> None:
    request.session.clear()


async def current_user_id(request: Request) -> Optional[int]:
    """FastAPI dependency — the signed-in user id, or None."""
    return request.session.get("user_id")


async def require_user(
    user_id: Optional[int] = Depends(current_user_id),
) -> int:
    """FastAPI dependency — rejects anonymous requests with 401."""
    if user_id is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return user_id


async def require_admin(
    user_id: Optional[int] = Depends(current_user_id),
    store: SubmissionStore = Depends(get_store),
) -> int:
    """FastAPI dependency — 401 when signed out, 403 for non-admins."""
    if user_id is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    if not store.is_admin(user_id):
        logger.warning("Admin check failed", extra={"user_id": user_id})
        raise HTTPException(status_code=403, detail="Admin access required")
    return user_id
