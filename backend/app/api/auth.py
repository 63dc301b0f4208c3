"""
Authentication endpoints.
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, status, Response, Cookie
from sqlalchemy.orm import Session
from typing import Optional
from pydantic import BaseModel, EmailStr
from datetime import datetime
from app.core.database import get_db
from app.core.config import SESSION_COOKIE_NAME, SESSION_MAX_AGE_HOURS
from app.core.security import verify_password
from app.models.user import User
from app.core.auth import create_session, delete_session, get_current_user_dependency
from app.services.memberships import build_actor, get_memberships
from app.services.permissions import is_admin, resolve_all

logger = logging.getLogger(__name__)

router = APIRouter()


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class UserResponse(BaseModel):
    id: int
    email: str
    username: str
    role: str
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        username=user.username,
        role=user.role.value if hasattr(user.role, "value") else str(user.role),
        is_active=user.is_active,
        created_at=user.created_at,
    )


@router.post("/login", response_model=dict)
async def login(
    request: LoginRequest,
    response: Response,
    db: Session = Depends(get_db)
):
    """Login with email and password."""
    user = db.query(User).filter(User.email == request.email.lower()).first()

    if not user or not verify_password(request.password, user.hashed_password):
        logger.info(f"Failed login attempt for {request.email}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password"
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive"
        )

    session_token = create_session(user.id, user.email)

    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=session_token,
        httponly=True,
        secure=False,  # Set to True in production with HTTPS
        samesite="lax",
        max_age=SESSION_MAX_AGE_HOURS * 3600,
        path="/",
    )

    return {
        "success": True,
        "user": user_to_response(user),
    }


@router.post("/logout", response_model=dict)
async def logout(
    response: Response,
    session_token: Optional[str] = Cookie(None, alias=SESSION_COOKIE_NAME)
):
    """Logout and clear session."""
    if session_token:
        delete_session(session_token)

    response.delete_cookie(
        key=SESSION_COOKIE_NAME,
        httponly=True,
        samesite="lax"
    )

    return {"success": True, "message": "Logged out"}


@router.get("/me", response_model=dict)
async def get_me(
    current_user: User = Depends(get_current_user_dependency),
    db: Session = Depends(get_db)
):
    """Current user with memberships and the capability records derived from them."""
    actor = build_actor(db, current_user)
    return {
        "user": user_to_response(current_user),
        "memberships": [m.to_dict() for m in get_memberships(db, current_user.id)],
        "permissions": {
            resource.value: capability.to_dict()
            for resource, capability in resolve_all(actor).items()
        },
        "is_admin": is_admin(actor),
    }
