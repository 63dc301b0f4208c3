"""
Password and token hashing helpers.
"""
import hashlib
import re
import secrets
import bcrypt
from app.core.config import BCRYPT_ROUNDS


def hash_password(password: str) -> str:
    """Hash password using bcrypt."""
    password_bytes = password.encode('utf-8')
    return bcrypt.hashpw(password_bytes, bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode('utf-8')


def verify_password(password: str, hashed: str) -> bool:
    """Verify password against hash."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), hashed.encode('utf-8'))
    except (ValueError, TypeError):
        return False


def validate_password_strength(password: str) -> list[str]:
    """
    Check a password against the account password policy.

    Returns:
        List of human-readable problems (empty if the password is acceptable)
    """
    errors = []
    password = password or ""

    if len(password) < 8:
        errors.append("Password must be at least 8 characters long")
    if len(password.encode('utf-8')) > 72:
        # bcrypt only looks at the first 72 bytes
        errors.append("Password must be at most 72 bytes long")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r"\d", password):
        errors.append("Password must contain at least one number")
    if not re.search(r"[^A-Za-z0-9\s]", password):
        errors.append("Password must contain at least one special character")

    return errors


def generate_token() -> str:
    """Generate an unguessable URL-safe bearer token."""
    return secrets.token_urlsafe(32)


def hash_token(token: str) -> str:
    """One-way form of an invitation token; this is the only form ever stored."""
    return hashlib.sha256(token.encode('utf-8')).hexdigest()
