"""
Admin overview: read-only counts for the admin dashboard, computed on demand.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from sqlalchemy import exists
from sqlalchemy.orm import Session, selectinload
from app.models.invitation import Invitation
from app.models.site import SiteMembership
from app.models.user import User
from app.services.email import is_smtp_configured
from app.services.errors import Forbidden, Unauthenticated
from app.services.invitations import InvitationStatus, derive_status
from app.services.permissions import Actor, administered_site_ids, is_admin


@dataclass
class AdminOverview:
    pending_invites_count: int
    expired_invites_count: int
    users_without_sites_count: int
    smtp_configured: bool

    def to_dict(self) -> dict:
        return {
            "pending_invites_count": self.pending_invites_count,
            "expired_invites_count": self.expired_invites_count,
            "users_without_sites_count": self.users_without_sites_count,
            "smtp_configured": self.smtp_configured,
        }


def get_admin_overview(db: Session, actor: Actor) -> AdminOverview:
    """
    Compute the dashboard counts visible to the actor.

    For a SITE_ADMIN the invitation counts only cover invitations whose every
    site they administer, and users without sites are never visible (0).
    """
    if not actor.is_authenticated:
        raise Unauthenticated()
    if not is_admin(actor):
        raise Forbidden("Admin access required")

    administered = None if actor.is_global_admin else administered_site_ids(actor)
    now = datetime.now(timezone.utc)

    unused = db.query(Invitation).filter(Invitation.used_at.is_(None))
    if administered is None:
        pending = unused.filter(Invitation.expires_at > now).count()
        expired = unused.filter(Invitation.expires_at <= now).count()
    else:
        pending = 0
        expired = 0
        for invitation in unused.options(selectinload(Invitation.sites)).all():
            site_ids = [site.site_id for site in invitation.sites]
            if not site_ids or not all(site_id in administered for site_id in site_ids):
                continue
            status = derive_status(invitation, now)
            if status == InvitationStatus.PENDING:
                pending += 1
            elif status == InvitationStatus.EXPIRED:
                expired += 1

    if actor.is_global_admin:
        users_without_sites = db.query(User).filter(
            ~exists().where(SiteMembership.user_id == User.id)
        ).count()
    else:
        users_without_sites = 0

    return AdminOverview(
        pending_invites_count=pending,
        expired_invites_count=expired,
        users_without_sites_count=users_without_sites,
        smtp_configured=is_smtp_configured(db),
    )
