"""
Invitation model classes.
"""
import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
from app.models.roles import SiteRole


class InvitationStatus(str, enum.Enum):
    PENDING = "pending"
    EXPIRED = "expired"
    ACCEPTED = "accepted"


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything is stored in UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def derive_status(invitation, now: Optional[datetime] = None) -> InvitationStatus:
    """Status is computed at read time, never stored."""
    if invitation.used_at is not None:
        return InvitationStatus.ACCEPTED
    now = now or datetime.now(timezone.utc)
    if now >= as_utc(invitation.expires_at):
        return InvitationStatus.EXPIRED
    return InvitationStatus.PENDING


def _iso(value: Optional[datetime]) -> Optional[str]:
    value = as_utc(value)
    return value.isoformat() if value else None


@dataclass
class InvitationSiteView:
    site_id: int
    site_role: SiteRole
    site_name: Optional[str]
    site_code: Optional[str]

    @classmethod
    def from_db_row(cls, row) -> "InvitationSiteView":
        """Create from an InvitationSite row (site relationship loaded lazily)."""
        return cls(
            site_id=row.site_id,
            site_role=row.site_role,
            site_name=row.site.name if row.site else None,
            site_code=row.site.code if row.site else None,
        )

    def to_dict(self) -> dict:
        return {
            "site_id": self.site_id,
            "site_role": self.site_role.value,
            "site_name": self.site_name,
            "site_code": self.site_code,
        }


@dataclass
class InvitationView:
    """Invitation as listed to admins."""
    id: int
    email: str
    username: Optional[str]
    status: InvitationStatus
    invited_by: int
    invited_by_name: Optional[str]
    created_at: Optional[datetime]
    expires_at: datetime
    used_at: Optional[datetime]
    sites: list = field(default_factory=list)

    @classmethod
    def from_db_row(cls, row, now: Optional[datetime] = None) -> "InvitationView":
        return cls(
            id=row.id,
            email=row.email,
            username=row.username,
            status=derive_status(row, now),
            invited_by=row.invited_by,
            invited_by_name=row.inviter.username if row.inviter else None,
            created_at=as_utc(row.created_at),
            expires_at=as_utc(row.expires_at),
            used_at=as_utc(row.used_at),
            sites=[InvitationSiteView.from_db_row(site) for site in row.sites],
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "username": self.username,
            "status": self.status.value,
            "invited_by": self.invited_by,
            "invited_by_name": self.invited_by_name,
            "created_at": _iso(self.created_at),
            "expires_at": _iso(self.expires_at),
            "used_at": _iso(self.used_at),
            "sites": [site.to_dict() for site in self.sites],
        }


@dataclass
class InvitationSummary:
    """What an unauthenticated visitor learns from a valid token."""
    email: str
    username: Optional[str]
    expires_at: datetime
    sites: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "email": self.email,
            "username": self.username,
            "expires_at": _iso(self.expires_at),
            "sites": [site.to_dict() for site in self.sites],
        }


@dataclass
class IssuedInvitation:
    """Result of issuing (or re-issuing) an invitation; the only place the plaintext token appears."""
    invitation: InvitationView
    token: str
    invite_url: str
    email_sent: bool
    email_error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "invitation": self.invitation.to_dict(),
            "token": self.token,
            "invite_url": self.invite_url,
            "email_sent": self.email_sent,
            "email_error": self.email_error,
        }
