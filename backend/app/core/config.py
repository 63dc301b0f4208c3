"""
Configuration management.
Loads from config_local.py (gitignored) for secrets, with defaults.
"""
from typing import Optional

# Try to import local config (gitignored)
try:
    from app.config_local import (
        DATABASE_DSN,
        SESSION_COOKIE_NAME,
        SESSION_SECRET,
        SMTP_HOST,
        SMTP_PORT,
        SMTP_USE_TLS,
        SMTP_USE_SSL,
        SMTP_USERNAME,
        SMTP_PASSWORD,
        SMTP_FROM_EMAIL,
        SMTP_FROM_NAME,
        FRONTEND_BASE_URL,
    )
    # Optional tuning knobs, defaulted when an older config_local omits them
    try:
        from app.config_local import (
            SESSION_MAX_AGE_HOURS,
            INVITATION_EXPIRY_DAYS,
            INVITATION_MAX_EXPIRY_DAYS,
            BCRYPT_ROUNDS,
        )
    except ImportError:
        SESSION_MAX_AGE_HOURS = 24
        INVITATION_EXPIRY_DAYS = 7
        INVITATION_MAX_EXPIRY_DAYS = 30
        BCRYPT_ROUNDS = 12
except ImportError:
    # Fallback defaults (SQLite file database for local development)
    DATABASE_DSN: str = "sqlite:///./infradb.db"
    SESSION_COOKIE_NAME: str = "infradb_session"
    SESSION_SECRET: Optional[str] = None
    SESSION_MAX_AGE_HOURS: int = 24
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 465
    SMTP_USE_TLS: bool = False
    SMTP_USE_SSL: bool = True
    SMTP_USERNAME: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_FROM_EMAIL: Optional[str] = None
    SMTP_FROM_NAME: str = "InfraDB"
    FRONTEND_BASE_URL: str = "http://localhost:3000"
    INVITATION_EXPIRY_DAYS: int = 7  # Default invitation lifetime
    INVITATION_MAX_EXPIRY_DAYS: int = 30
    BCRYPT_ROUNDS: int = 12


def get_settings():
    """Return settings object (for FastAPI dependency injection if needed)."""
    return type("Settings", (), {
        "database_dsn": DATABASE_DSN,
        "session_cookie_name": SESSION_COOKIE_NAME,
        "session_secret": SESSION_SECRET,
        "session_max_age_hours": SESSION_MAX_AGE_HOURS,
        "smtp_host": SMTP_HOST,
        "smtp_port": SMTP_PORT,
        "smtp_use_tls": SMTP_USE_TLS,
        "smtp_use_ssl": SMTP_USE_SSL,
        "smtp_username": SMTP_USERNAME,
        "smtp_password": SMTP_PASSWORD,
        "smtp_from_email": SMTP_FROM_EMAIL,
        "smtp_from_name": SMTP_FROM_NAME,
        "frontend_base_url": FRONTEND_BASE_URL,
        "invitation_expiry_days": INVITATION_EXPIRY_DAYS,
        "invitation_max_expiry_days": INVITATION_MAX_EXPIRY_DAYS,
        "bcrypt_rounds": BCRYPT_ROUNDS,
    })()
