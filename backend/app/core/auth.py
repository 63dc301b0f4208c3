"""
Authentication utilities and dependencies.

The session cookie only identifies the user. Roles and memberships are read
from the database on every request and turned into an explicit Actor.
"""
from fastapi import Depends, Cookie
from sqlalchemy.orm import Session
from typing import Optional
from app.core.database import get_db
from app.models.user import User
from app.core.config import SESSION_COOKIE_NAME, SESSION_SECRET, SESSION_MAX_AGE_HOURS
from app.services.errors import Forbidden, Unauthenticated
from app.services.memberships import build_actor
from app.services.permissions import Actor, is_admin
import base64
import hashlib
import hmac
import json
import logging
from datetime import datetime, timedelta, timezone

logger = logging.getLogger(__name__)

# Tokens invalidated by logout, mapped to the moment they would have expired anyway
_revoked_sessions: dict[str, datetime] = {}

__all__ = [
    'create_session',
    'verify_session',
    'delete_session',
    'get_current_user_dependency',
    'get_current_actor_dependency',
    'require_admin_access',
    'require_global_admin',
]


def _secret() -> bytes:
    return SESSION_SECRET.encode() if SESSION_SECRET else b'default-secret-change-in-prod'


def _sign(payload: str) -> str:
    return hmac.new(_secret(), payload.encode(), hashlib.sha256).hexdigest()


def create_session(user_id: int, email: str) -> str:
    """Create a signed session token."""
    session_data = {
        'user_id': user_id,
        'email': email,
        'created_at': datetime.now(timezone.utc).isoformat(),
    }

    # base64 keeps the cookie value free of quotes and commas
    payload = base64.urlsafe_b64encode(json.dumps(session_data, sort_keys=True).encode()).decode()
    return f"{payload}.{_sign(payload)}"


def verify_session(session_token: str) -> Optional[dict]:
    """Verify and get session data."""
    if not session_token or session_token in _revoked_sessions:
        return None

    parts = session_token.rsplit('.', 1)
    if len(parts) != 2:
        return None

    payload, signature = parts
    if not hmac.compare_digest(signature, _sign(payload)):
        return None

    try:
        session_data = json.loads(base64.urlsafe_b64decode(payload.encode()))
        expires_at = _session_expiry(session_data)
    except (ValueError, KeyError, TypeError):
        return None

    if datetime.now(timezone.utc) > expires_at:
        return None

    return session_data


def _session_expiry(session_data: dict) -> datetime:
    created_at = datetime.fromisoformat(session_data["created_at"])
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return created_at + timedelta(hours=SESSION_MAX_AGE_HOURS)


def delete_session(session_token: str):
    """Invalidate a session; revocations of sessions past their max age are dropped."""
    session_data = verify_session(session_token)
    if not session_data:
        return

    now = datetime.now(timezone.utc)
    for token, expires_at in list(_revoked_sessions.items()):
        if expires_at <= now:
            del _revoked_sessions[token]
    _revoked_sessions[session_token] = _session_expiry(session_data)


def get_current_user_dependency(
    session_token: Optional[str] = Cookie(None, alias=SESSION_COOKIE_NAME),
    db: Session = Depends(get_db)
) -> User:
    """Dependency to get current authenticated user."""
    if not session_token:
        raise Unauthenticated("Not authenticated")

    session_data = verify_session(session_token)
    if not session_data:
        raise Unauthenticated("Invalid or expired session")

    user = db.query(User).filter(User.id == session_data['user_id']).first()
    if not user or not user.is_active:
        raise Unauthenticated("User not found or inactive")

    return user


def get_current_actor_dependency(
    current_user: User = Depends(get_current_user_dependency),
    db: Session = Depends(get_db)
) -> Actor:
    """Dependency building the actor context from the user's current memberships."""
    return build_actor(db, current_user)


def require_admin_access(
    actor: Actor = Depends(get_current_actor_dependency)
) -> Actor:
    """Dependency for the admin surface: GLOBAL_ADMIN or SITE_ADMIN of any site."""
    if not is_admin(actor):
        logger.info(f"User {actor.user_id} denied admin access")
        raise Forbidden("Admin access required")
    return actor


def require_global_admin(
    actor: Actor = Depends(get_current_actor_dependency)
) -> Actor:
    """Dependency for settings reserved to global admins."""
    if not actor.is_global_admin:
        raise Forbidden("Global admin access required")
    return actor
