"""
Authentication Utility - JWT verification and role gating.

Tokens are issued by the campus identity service; this module only
verifies them. Provides:
- JWT token creation/verification (creation is used by tooling and tests)
- FastAPI dependencies for protected routes, one per role
"""

from datetime import datetime, timedelta
from typing import Optional
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import text

from app.core.config import get_settings
from app.db.postgres import get_db_session
from app.models.domain import UserRole

settings = get_settings()

# Bearer token extractor
bearer_scheme = HTTPBearer()


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token."""
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Optional[dict]:
    """Decode and verify JWT token."""
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None


def _load_user(token: str) -> dict:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired token",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_token(token)
    if not payload:
        raise credentials_exception

    user_id = payload.get("sub")
    if not user_id or not str(user_id).isdigit():
        raise credentials_exception

    # Verify user exists
    with get_db_session() as db:
        user = db.execute(
            text("SELECT user_id, email, role, branch, is_active FROM users WHERE user_id = :id"),
            {"id": int(user_id)}
        ).mappings().first()

    if not user:
        raise credentials_exception

    if not user["is_active"]:
        raise HTTPException(status_code=403, detail="Account deactivated")

    return {"user_id": user["user_id"], "email": user["email"], "role": user["role"], "branch": user["branch"]}


def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme)) -> dict:
    """
    FastAPI dependency - Get current authenticated user.

    Usage:
        @router.get("/protected")
        def route(user: dict = Depends(get_current_user)):
            return user
    """
    return _load_user(credentials.credentials)


def attach_student_id(user: dict) -> dict:
    """Add student_id for student users (no-op for other roles)."""
    if user["role"] != UserRole.student.value:
        return user

    with get_db_session() as db:
        row = db.execute(
            text("SELECT student_id FROM students WHERE user_id = :id"),
            {"id": user["user_id"]}
        ).fetchone()

    if not row:
        raise HTTPException(status_code=404, detail="Student profile not found")

    user["student_id"] = row[0]
    return user


def get_current_student(user: dict = Depends(get_current_user)) -> dict:
    """Dependency - Require student role and get student_id."""
    if user["role"] != UserRole.student.value:
        raise HTTPException(status_code=403, detail="Students only")
    return attach_student_id(user)


def get_current_coordinator(user: dict = Depends(get_current_user)) -> dict:
    """Dependency - Require placement coordinator role."""
    if user["role"] != UserRole.coordinator.value:
        raise HTTPException(status_code=403, detail="Placement coordinators only")
    return user


def get_current_advisor(user: dict = Depends(get_current_user)) -> dict:
    """Dependency - Require advisor role with an assigned branch."""
    if user["role"] != UserRole.advisor.value:
        raise HTTPException(status_code=403, detail="Advisors only")
    if not user.get("branch"):
        raise HTTPException(status_code=403, detail="Advisor has no branch assigned")
    return user
