"""
Email sending service using SMTP.

SMTP settings come from config_local first and from the platform_settings
table (managed by global admins) second.
"""
import html
import smtplib
from dataclasses import dataclass
from datetime import datetime, timezone
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from email.utils import formataddr
from typing import Optional
from urllib.parse import quote, urlparse
import logging
from sqlalchemy.orm import Session
from app.core import config
from app.models.platform_settings import PlatformSettings

logger = logging.getLogger(__name__)

SMTP_SETTING_KEYS = (
    "smtp_host",
    "smtp_port",
    "smtp_username",
    "smtp_password",
    "smtp_from",
    "smtp_secure",
)

SMTP_NOT_CONFIGURED = "SMTP not configured"


@dataclass
class SmtpConfig:
    host: str
    port: int
    username: str
    password: str
    from_email: str
    from_name: Optional[str]
    use_ssl: bool
    use_tls: bool
    source: str  # 'config' or 'db'


@dataclass
class EmailSendResult:
    email_sent: bool
    email_error: Optional[str] = None


def _parse_bool(value) -> Optional[bool]:
    if value is None or isinstance(value, bool):
        return value
    raw = str(value).strip().lower()
    if raw in ("true", "1", "yes"):
        return True
    if raw in ("false", "0", "no"):
        return False
    return None


def get_smtp_settings(db: Session) -> dict:
    """Raw SMTP values stored in platform_settings (missing keys map to None)."""
    rows = db.query(PlatformSettings).filter(PlatformSettings.key.in_(SMTP_SETTING_KEYS)).all()
    values = {key: None for key in SMTP_SETTING_KEYS}
    for row in rows:
        values[row.key] = row.get_value()
    return values


def save_smtp_settings(db: Session, updates: dict) -> dict:
    """
    Store SMTP settings in platform_settings.

    Keys with value None are left untouched; an empty string clears the key.
    """
    for key, value in updates.items():
        if key not in SMTP_SETTING_KEYS or value is None:
            continue
        setting = db.query(PlatformSettings).filter(PlatformSettings.key == key).first()
        if not setting:
            setting = PlatformSettings(key=key)
            db.add(setting)
        setting.set_value(value if value != "" else None)
    db.commit()
    return get_smtp_settings(db)


def load_smtp_config(db: Optional[Session] = None) -> Optional[SmtpConfig]:
    """
    Resolve the effective SMTP configuration.

    Returns:
        SmtpConfig, or None if neither config_local nor platform_settings
        holds a complete configuration
    """
    if config.SMTP_HOST and config.SMTP_USERNAME and config.SMTP_PASSWORD and config.SMTP_FROM_EMAIL:
        return SmtpConfig(
            host=config.SMTP_HOST,
            port=int(config.SMTP_PORT),
            username=config.SMTP_USERNAME,
            password=config.SMTP_PASSWORD,
            from_email=config.SMTP_FROM_EMAIL,
            from_name=config.SMTP_FROM_NAME,
            use_ssl=bool(config.SMTP_USE_SSL),
            use_tls=bool(config.SMTP_USE_TLS),
            source="config",
        )

    if db is None:
        return None

    values = get_smtp_settings(db)
    host = str(values["smtp_host"] or "").strip()
    username = str(values["smtp_username"] or "").strip()
    password = str(values["smtp_password"] or "").strip()
    from_email = str(values["smtp_from"] or "").strip()
    try:
        port = int(values["smtp_port"])
    except (TypeError, ValueError):
        port = 0

    if not host or port <= 0 or not username or not password or not from_email:
        return None

    secure = _parse_bool(values["smtp_secure"])
    if secure is None:
        secure = port == 465

    return SmtpConfig(
        host=host,
        port=port,
        username=username,
        password=password,
        from_email=from_email,
        from_name=config.SMTP_FROM_NAME,
        use_ssl=secure,
        use_tls=not secure,
        source="db",
    )


def is_smtp_configured(db: Optional[Session] = None) -> bool:
    """Check whether outbound email can be attempted."""
    return load_smtp_config(db) is not None


def send_email(
    to_email: str,
    subject: str,
    html_body: str,
    text_body: Optional[str] = None,
    smtp_config: Optional[SmtpConfig] = None,
) -> EmailSendResult:
    """
    Send an email via SMTP.

    Never raises: delivery problems are logged and reported in the result.

    Args:
        to_email: Recipient email address
        subject: Email subject
        html_body: HTML email body
        text_body: Plain text email body (optional)
        smtp_config: Resolved SMTP configuration (None means not configured)

    Returns:
        EmailSendResult with email_sent flag and error message on failure
    """
    if smtp_config is None:
        logger.warning(f"SMTP configuration is missing. Cannot send email to {to_email}.")
        return EmailSendResult(email_sent=False, email_error=SMTP_NOT_CONFIGURED)

    try:
        # Create message
        msg = MIMEMultipart('alternative')
        msg['Subject'] = subject
        msg['From'] = formataddr((smtp_config.from_name or "", smtp_config.from_email))
        msg['To'] = to_email

        if text_body:
            msg.attach(MIMEText(text_body, 'plain', 'utf-8'))

        msg.attach(MIMEText(html_body, 'html', 'utf-8'))

        # Connect to SMTP server
        smtp_class = smtplib.SMTP_SSL if smtp_config.use_ssl else smtplib.SMTP
        with smtp_class(smtp_config.host, smtp_config.port, timeout=10) as server:
            if smtp_config.use_tls and not smtp_config.use_ssl:
                server.starttls()
            server.login(smtp_config.username, smtp_config.password)
            server.send_message(msg)

        logger.info(f"Email sent successfully to {to_email}")
        return EmailSendResult(email_sent=True)

    except Exception as e:
        logger.error(f"Failed to send email to {to_email}: {str(e)}", exc_info=True)
        return EmailSendResult(email_sent=False, email_error=str(e) or "Unknown SMTP error")


def build_invite_url(token: str, base_url: Optional[str] = None) -> str:
    """Direct accept link for an invitation token."""
    base = (base_url if base_url is not None else config.FRONTEND_BASE_URL) or ""
    return f"{base.strip().rstrip('/')}/auth/register?token={quote(token, safe='')}"


def format_expiry_utc(expires_at: datetime) -> str:
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at.astimezone(timezone.utc).strftime("%d %B %Y, %H:%M UTC")


def send_invitation_email(
    db: Session,
    to_email: str,
    invite_url: str,
    expires_at: datetime,
    invitee_name: Optional[str] = None,
    inviter_name: Optional[str] = None,
) -> EmailSendResult:
    """
    Send the invitation email if SMTP is configured.

    Args:
        db: Database session (for SMTP settings)
        to_email: Invited email address
        invite_url: Direct accept link
        expires_at: Invitation expiry
        invitee_name: Suggested display name (optional)
        inviter_name: Display name of the inviting admin (optional)

    Returns:
        EmailSendResult
    """
    smtp_config = load_smtp_config(db)
    greeting_name = invitee_name or to_email
    friendly_expiry = format_expiry_utc(expires_at)
    invited_by = f" by {inviter_name}" if inviter_name else ""
    domain = urlparse(invite_url).netloc

    subject = "Complete your InfraDB registration"

    text_body = f"""Hi {greeting_name},

You've been granted access to InfraDB{invited_by}.

Complete registration:
{invite_url}

This invitation expires at: {friendly_expiry}
"""

    url_attr = html.escape(invite_url, quote=True)
    html_body = f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
</head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
    <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
        <h2 style="color: #2563eb;">InfraDB invitation</h2>
        <p>Hi {html.escape(greeting_name)},</p>
        <p>You've been granted access to InfraDB{html.escape(invited_by)}.</p>
        <div style="text-align: center; margin: 30px 0;">
            <a href="{url_attr}" style="display: inline-block; padding: 12px 18px; background-color: #2563eb; color: #ffffff; text-decoration: none; border-radius: 8px; font-weight: bold;">Complete registration</a>
        </div>
        <p style="font-size: 13px;">This invitation expires at: {html.escape(friendly_expiry)}</p>
        <p style="font-size: 12px; color: #666;">Button not working? Copy and paste this URL into your browser:<br>
            <a href="{url_attr}">{html.escape(invite_url)}</a></p>
        <p style="font-size: 12px; color: #666;">InfraDB Access Team<br>{html.escape(domain)}</p>
    </div>
</body>
</html>"""

    return send_email(
        to_email=to_email,
        subject=subject,
        html_body=html_body,
        text_body=text_body,
        smtp_config=smtp_config,
    )


def send_test_email(db: Session, to_email: str) -> EmailSendResult:
    """Send a short message to check the SMTP settings."""
    return send_email(
        to_email=to_email,
        subject="InfraDB SMTP test email",
        html_body="<p>This is a test email from InfraDB. Your SMTP settings appear to be working.</p>",
        text_body="This is a test email from InfraDB. Your SMTP settings appear to be working.",
        smtp_config=load_smtp_config(db),
    )
