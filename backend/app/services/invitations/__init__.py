"""
Invitation issuer and validator/acceptor.
"""
from app.services.invitations.invitation_service import (
    issue_invitation,
    validate_invitation,
    accept_invitation,
    list_invitations,
    cancel_invitation,
    resend_invitation,
    rotate_invitation_link,
)
from app.services.invitations.invitation_models import (
    InvitationStatus,
    InvitationSiteView,
    InvitationView,
    InvitationSummary,
    IssuedInvitation,
    derive_status,
)

__all__ = [
    "issue_invitation",
    "validate_invitation",
    "accept_invitation",
    "list_invitations",
    "cancel_invitation",
    "resend_invitation",
    "rotate_invitation_link",
    "InvitationStatus",
    "InvitationSiteView",
    "InvitationView",
    "InvitationSummary",
    "IssuedInvitation",
    "derive_status",
]
