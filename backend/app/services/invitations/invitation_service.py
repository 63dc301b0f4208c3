"""
Invitation lifecycle: issue, validate, accept, list, cancel, resend, rotate.

Only the SHA-256 hash of a token is ever persisted. The plaintext leaves
this module exactly once, in the IssuedInvitation returned to the inviter.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional
from sqlalchemy import update
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from app.core import config
from app.core.security import generate_token, hash_password, hash_token, validate_password_strength
from app.models.invitation import Invitation, InvitationSite
from app.models.roles import GlobalRole
from app.models.site import SiteMembership
from app.models.user import User
from app.services import email as email_service
from app.services.audit import record_action
from app.services.errors import (
    AlreadyUsed,
    Conflict,
    Expired,
    Forbidden,
    NotFound,
    Unauthenticated,
    ValidationError,
)
from app.services.invitations.invitation_models import (
    InvitationSiteView,
    InvitationStatus,
    InvitationSummary,
    InvitationView,
    IssuedInvitation,
    as_utc,
    derive_status,
)
from app.services.memberships import ensure_sites_exist, normalize_assignments
from app.services.permissions import Actor, administered_site_ids, can_administer_site, is_admin

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _normalize_email(email: str) -> str:
    email = (email or "").strip().lower()
    if not email or "@" not in email:
        raise ValidationError("A valid email address is required")
    return email


def _validate_expiry_days(expires_in_days: Optional[int]) -> int:
    if expires_in_days is None:
        return config.INVITATION_EXPIRY_DAYS
    try:
        days = int(expires_in_days)
    except (TypeError, ValueError):
        raise ValidationError("expires_in_days must be a whole number of days")
    if days < 1 or days > config.INVITATION_MAX_EXPIRY_DAYS:
        raise ValidationError(
            f"expires_in_days must be between 1 and {config.INVITATION_MAX_EXPIRY_DAYS}"
        )
    return days


def _username_taken(db: Session, username: str, exclude_user_id: Optional[int] = None) -> bool:
    query = db.query(User.id).filter(User.username == username)
    if exclude_user_id is not None:
        query = query.filter(User.id != exclude_user_id)
    return query.first() is not None


def _email_taken(db: Session, email: str) -> bool:
    return db.query(User.id).filter(User.email == email.lower()).first() is not None


def _require_admin(actor: Actor) -> None:
    if not actor.is_authenticated:
        raise Unauthenticated()
    if not is_admin(actor):
        raise Forbidden("Admin access required")


def _is_visible(actor: Actor, invitation: Invitation) -> bool:
    """SITE_ADMIN sees an invitation only if they administer every one of its sites."""
    if actor.is_global_admin:
        return True
    administered = administered_site_ids(actor)
    site_ids = [assignment.site_id for assignment in invitation.sites]
    return bool(site_ids) and all(site_id in administered for site_id in site_ids)


def _get_visible_invitation(db: Session, actor: Actor, invitation_id: int) -> Invitation:
    invitation = db.query(Invitation).filter(Invitation.id == invitation_id).first()
    if not invitation or not _is_visible(actor, invitation):
        raise NotFound("Invitation not found")
    return invitation


def _lookup_by_token(db: Session, token: str) -> Invitation:
    if not token or not token.strip():
        raise NotFound("Invitation not found")
    invitation = db.query(Invitation).filter(Invitation.token_hash == hash_token(token.strip())).first()
    if not invitation:
        raise NotFound("Invitation not found")
    return invitation


def _ensure_usable(invitation: Invitation, now: datetime) -> None:
    status = derive_status(invitation, now)
    if status == InvitationStatus.ACCEPTED:
        raise AlreadyUsed()
    if status == InvitationStatus.EXPIRED:
        raise Expired()


def _inviter_name(db: Session, user_id: Optional[int]) -> Optional[str]:
    if user_id is None:
        return None
    inviter = db.query(User).filter(User.id == user_id).first()
    return inviter.username if inviter else None


def issue_invitation(
    db: Session,
    actor: Actor,
    email: str,
    assignments: Iterable,
    username: Optional[str] = None,
    expires_in_days: Optional[int] = None,
) -> IssuedInvitation:
    """
    Create an invitation and try to email it.

    Args:
        db: Database session
        actor: Inviting admin
        email: Address to invite (must not belong to an existing user)
        assignments: Non-empty ordered site assignments
        username: Suggested display name (optional)
        expires_in_days: Lifetime in days (default INVITATION_EXPIRY_DAYS)

    Returns:
        IssuedInvitation with the plaintext token and direct link. Email
        failures are reported in email_sent/email_error, never raised.

    Raises:
        Forbidden: actor cannot grant one of the assigned sites
        ValidationError: empty/duplicate assignments, bad expiry, taken username
        NotFound: unknown site
        Conflict: email already belongs to a user
    """
    _require_admin(actor)

    email = _normalize_email(email)
    parsed = normalize_assignments(assignments, allow_empty=False)

    not_administered = sorted({a.site_id for a in parsed if not can_administer_site(actor, a.site_id)})
    if not_administered:
        raise Forbidden(
            f"You are not an admin of site(s): {', '.join(str(site_id) for site_id in not_administered)}"
        )

    ensure_sites_exist(db, [a.site_id for a in parsed])
    days = _validate_expiry_days(expires_in_days)

    if _email_taken(db, email):
        raise Conflict("A user with this email already exists")

    username = (username or "").strip() or None
    if username and _username_taken(db, username):
        raise ValidationError("Username is already taken")

    token = generate_token()
    now = _now()
    invitation = Invitation(
        email=email,
        username=username,
        token_hash=hash_token(token),
        invited_by=actor.user_id,
        expires_at=now + timedelta(days=days),
    )
    invitation.sites = [
        InvitationSite(site_id=a.site_id, site_role=a.site_role, position=position)
        for position, a in enumerate(parsed)
    ]

    try:
        db.add(invitation)
        db.flush()
        record_action(
            db,
            "invitation_issued",
            actor_user_id=actor.user_id,
            details={
                "invitation_id": invitation.id,
                "email": email,
                "sites": [{"site_id": a.site_id, "site_role": a.site_role.value} for a in parsed],
                "expires_in_days": days,
            },
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to create invitation for {email}: {e}", exc_info=True)
        raise

    db.refresh(invitation)
    logger.info(f"User {actor.user_id} invited {email} to {len(parsed)} site(s) (invitation {invitation.id})")

    invite_url = email_service.build_invite_url(token)
    result = email_service.send_invitation_email(
        db,
        to_email=email,
        invite_url=invite_url,
        expires_at=as_utc(invitation.expires_at),
        invitee_name=username,
        inviter_name=_inviter_name(db, actor.user_id),
    )
    if not result.email_sent:
        logger.warning(f"Invitation {invitation.id} email not sent: {result.email_error}")

    return IssuedInvitation(
        invitation=InvitationView.from_db_row(invitation),
        token=token,
        invite_url=invite_url,
        email_sent=result.email_sent,
        email_error=result.email_error,
    )


def validate_invitation(db: Session, token: str) -> InvitationSummary:
    """
    Check a token without consuming it.

    Raises:
        NotFound: unknown token
        Expired: past expires_at
        AlreadyUsed: already accepted
    """
    invitation = _lookup_by_token(db, token)
    _ensure_usable(invitation, _now())

    return InvitationSummary(
        email=invitation.email,
        username=invitation.username,
        expires_at=as_utc(invitation.expires_at),
        sites=[InvitationSiteView.from_db_row(site) for site in invitation.sites],
    )


def accept_invitation(
    db: Session,
    token: str,
    password: str,
    username: Optional[str] = None,
) -> User:
    """
    Accept an invitation: create the user and its memberships, consume the token.

    Everything happens in one transaction. The token is consumed with a
    compare-and-set on used_at, so of two racing accepts exactly one wins.
    Token state is checked before the password policy.

    Raises:
        NotFound / Expired / AlreadyUsed: token state
        ValidationError: password policy failure, missing or taken username
        Conflict: the email meanwhile belongs to a user
    """
    invitation = _lookup_by_token(db, token)
    now = _now()
    _ensure_usable(invitation, now)

    password_errors = validate_password_strength(password)
    if password_errors:
        raise ValidationError("Password does not meet requirements", errors=password_errors)

    display_name = (username or invitation.username or "").strip()
    if not display_name:
        raise ValidationError("Username is required")

    invitation_id = invitation.id
    email = invitation.email
    assignments = [(site.site_id, site.site_role) for site in invitation.sites]
    hashed_password = hash_password(password)

    try:
        result = db.execute(
            update(Invitation)
            .where(Invitation.id == invitation_id, Invitation.used_at.is_(None))
            .values(used_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.rollback()
            raise AlreadyUsed()

        if _email_taken(db, email):
            db.rollback()
            raise Conflict("A user with this email already exists")
        if _username_taken(db, display_name):
            db.rollback()
            raise ValidationError("Username is already taken")

        user = User(
            email=email,
            username=display_name,
            hashed_password=hashed_password,
            role=GlobalRole.USER,
            is_active=True,
        )
        db.add(user)
        db.flush()

        for site_id, site_role in assignments:
            db.add(SiteMembership(user_id=user.id, site_id=site_id, site_role=site_role))

        record_action(
            db,
            "invitation_accepted",
            target_user_id=user.id,
            details={"invitation_id": invitation_id, "email": email, "sites": len(assignments)},
        )
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.warning(f"Invitation {invitation_id} acceptance hit a uniqueness conflict: {e}")
        raise Conflict("A user with this email or username already exists")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to accept invitation {invitation_id}: {e}", exc_info=True)
        raise

    db.refresh(user)
    logger.info(f"Invitation {invitation_id} accepted: created user {user.id} with {len(assignments)} membership(s)")
    return user


def list_invitations(db: Session, actor: Actor, include_used: bool = False) -> list[InvitationView]:
    """
    List invitations visible to the actor, newest first.

    Args:
        db: Database session
        actor: Acting admin
        include_used: Also list accepted invitations

    Returns:
        List of InvitationView with derived status
    """
    _require_admin(actor)

    query = db.query(Invitation)
    if not include_used:
        query = query.filter(Invitation.used_at.is_(None))
    invitations = query.order_by(Invitation.created_at.desc(), Invitation.id.desc()).all()

    now = _now()
    return [
        InvitationView.from_db_row(invitation, now)
        for invitation in invitations
        if _is_visible(actor, invitation)
    ]


def cancel_invitation(db: Session, actor: Actor, invitation_id: int) -> None:
    """
    Delete a pending or expired invitation.

    Raises:
        NotFound: absent or not visible to the actor
        Conflict: already accepted
    """
    _require_admin(actor)
    invitation = _get_visible_invitation(db, actor, invitation_id)

    if invitation.used_at is not None:
        raise Conflict("Invitation has already been accepted and cannot be cancelled")

    email = invitation.email
    try:
        db.delete(invitation)
        record_action(
            db,
            "invitation_cancelled",
            actor_user_id=actor.user_id,
            details={"invitation_id": invitation_id, "email": email},
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to cancel invitation {invitation_id}: {e}", exc_info=True)
        raise

    logger.info(f"User {actor.user_id} cancelled invitation {invitation_id} ({email})")


def _rotate_token(db: Session, actor: Actor, invitation: Invitation, action_type: str,
                  expires_at: Optional[datetime] = None) -> str:
    """Swap in a fresh token; the previous link stops working."""
    token = generate_token()
    invitation.token_hash = hash_token(token)
    if expires_at is not None:
        invitation.expires_at = expires_at
    try:
        record_action(
            db,
            action_type,
            actor_user_id=actor.user_id,
            details={"invitation_id": invitation.id, "email": invitation.email},
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to rotate token of invitation {invitation.id}: {e}", exc_info=True)
        raise
    db.refresh(invitation)
    return token


def resend_invitation(
    db: Session,
    actor: Actor,
    invitation_id: int,
    expires_in_days: Optional[int] = None,
) -> IssuedInvitation:
    """
    Re-send a pending invitation with a fresh token and a fresh expiry.

    Raises:
        NotFound: absent or not visible to the actor
        Expired / AlreadyUsed: only pending invitations can be re-sent
    """
    _require_admin(actor)
    invitation = _get_visible_invitation(db, actor, invitation_id)
    now = _now()
    _ensure_usable(invitation, now)
    days = _validate_expiry_days(expires_in_days)

    token = _rotate_token(db, actor, invitation, "invitation_resent", expires_at=now + timedelta(days=days))
    invite_url = email_service.build_invite_url(token)
    result = email_service.send_invitation_email(
        db,
        to_email=invitation.email,
        invite_url=invite_url,
        expires_at=as_utc(invitation.expires_at),
        invitee_name=invitation.username,
        inviter_name=_inviter_name(db, invitation.invited_by),
    )
    logger.info(f"User {actor.user_id} re-sent invitation {invitation_id} (email_sent={result.email_sent})")

    return IssuedInvitation(
        invitation=InvitationView.from_db_row(invitation),
        token=token,
        invite_url=invite_url,
        email_sent=result.email_sent,
        email_error=result.email_error,
    )


def rotate_invitation_link(db: Session, actor: Actor, invitation_id: int) -> IssuedInvitation:
    """
    Issue a new link for a pending invitation without emailing it.

    The expiry is kept; the previous link stops working.
    """
    _require_admin(actor)
    invitation = _get_visible_invitation(db, actor, invitation_id)
    _ensure_usable(invitation, _now())

    token = _rotate_token(db, actor, invitation, "invitation_link_rotated")
    logger.info(f"User {actor.user_id} rotated the link of invitation {invitation_id}")

    return IssuedInvitation(
        invitation=InvitationView.from_db_row(invitation),
        token=token,
        invite_url=email_service.build_invite_url(token),
        email_sent=False,
    )
