"""
Database models.
"""
from app.models.roles import GlobalRole, SiteRole
from app.models.user import User
from app.models.site import Site, SiteMembership
from app.models.invitation import Invitation, InvitationSite
from app.models.platform_settings import PlatformSettings
from app.models.audit_log import AuditLog

__all__ = [
    "GlobalRole",
    "SiteRole",
    "User",
    "Site",
    "SiteMembership",
    "Invitation",
    "InvitationSite",
    "PlatformSettings",
    "AuditLog",
]
