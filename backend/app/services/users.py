"""
User administration: listing, global role changes, deletion.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from sqlalchemy import or_
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from app.models.roles import GlobalRole, parse_global_role
from app.models.site import Site, SiteMembership
from app.models.user import User
from app.services.audit import record_action
from app.services.errors import (
    Forbidden,
    LastGlobalAdmin,
    NotFound,
    SelfActionForbidden,
    Unauthenticated,
)
from app.services.memberships import MembershipView
from app.services.permissions import Actor, administered_site_ids, can_administer_site, is_admin

logger = logging.getLogger(__name__)


@dataclass
class UserView:
    """User as listed to admins."""
    id: int
    email: str
    username: str
    role: GlobalRole
    is_active: bool
    created_at: Optional[datetime]
    memberships: list = field(default_factory=list)

    @classmethod
    def from_db_row(cls, row, memberships: list) -> "UserView":
        return cls(
            id=row.id,
            email=row.email,
            username=row.username,
            role=GlobalRole(row.role),
            is_active=row.is_active,
            created_at=row.created_at,
            memberships=memberships,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "username": self.username,
            "role": self.role.value,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "memberships": [m.to_dict() for m in self.memberships],
        }


def _require_global_admin(actor: Actor, message: str) -> None:
    if not actor.is_authenticated:
        raise Unauthenticated()
    if not actor.is_global_admin:
        raise Forbidden(message)


def _memberships_by_user(db: Session, user_ids: list, site_ids: Optional[frozenset] = None) -> dict:
    if not user_ids:
        return {}
    query = db.query(SiteMembership, Site).join(
        Site, Site.id == SiteMembership.site_id
    ).filter(SiteMembership.user_id.in_(user_ids))
    if site_ids is not None:
        query = query.filter(SiteMembership.site_id.in_(site_ids))

    result = {user_id: [] for user_id in user_ids}
    for membership, site in query.order_by(Site.code).all():
        result[membership.user_id].append(MembershipView.from_db_row((membership, site)))
    return result


def _global_admin_count(db: Session) -> int:
    # Lock the admin rows so two concurrent demotions cannot both pass the check
    rows = db.query(User.id).filter(User.role == GlobalRole.GLOBAL_ADMIN).with_for_update().all()
    return len(rows)


def list_users(
    db: Session,
    actor: Actor,
    search: Optional[str] = None,
    role=None,
    site_id: Optional[int] = None,
) -> list[UserView]:
    """
    List users visible to the actor.

    GLOBAL_ADMIN sees everyone. SITE_ADMIN sees users holding a membership on
    a site they administer, with memberships limited to those sites.

    Args:
        db: Database session
        actor: Acting admin
        search: Case-insensitive substring of email or username
        role: Global role filter
        site_id: Only users with a membership on this site

    Raises:
        Forbidden: actor is not an admin, or filters on a site they do not administer
    """
    if not actor.is_authenticated:
        raise Unauthenticated()
    if not is_admin(actor):
        raise Forbidden("Admin access required")
    if site_id is not None and not can_administer_site(actor, site_id):
        raise Forbidden("You are not an admin of this site")

    visible_sites = None if actor.is_global_admin else administered_site_ids(actor)

    query = db.query(User)
    if search:
        pattern = f"%{search.strip().lower()}%"
        query = query.filter(or_(User.email.ilike(pattern), User.username.ilike(pattern)))
    if role is not None and role != "":
        query = query.filter(User.role == parse_global_role(role))
    if visible_sites is not None:
        query = query.filter(User.id.in_(
            db.query(SiteMembership.user_id).filter(SiteMembership.site_id.in_(visible_sites))
        ))
    if site_id is not None:
        query = query.filter(User.id.in_(
            db.query(SiteMembership.user_id).filter(SiteMembership.site_id == site_id)
        ))

    users = query.order_by(User.username, User.id).all()
    memberships = _memberships_by_user(db, [u.id for u in users], visible_sites)
    return [UserView.from_db_row(u, memberships.get(u.id, [])) for u in users]


def set_user_global_role(db: Session, actor: Actor, user_id: int, role) -> UserView:
    """
    Change a user's global role (GLOBAL_ADMIN only).

    Raises:
        Forbidden: actor is not GLOBAL_ADMIN
        ValidationError: unknown role
        NotFound: unknown user
        LastGlobalAdmin: would leave no GLOBAL_ADMIN
    """
    _require_global_admin(actor, "Only global admins can change global roles")
    new_role = parse_global_role(role)

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFound("User not found")

    old_role = GlobalRole(user.role)
    if old_role != new_role:
        if old_role == GlobalRole.GLOBAL_ADMIN and _global_admin_count(db) <= 1:
            db.rollback()
            raise LastGlobalAdmin("Cannot demote the last global admin")

        try:
            user.role = new_role
            record_action(
                db,
                "role_changed",
                actor_user_id=actor.user_id,
                target_user_id=user.id,
                details={"old_role": old_role.value, "new_role": new_role.value},
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to change role of user {user_id}: {e}", exc_info=True)
            raise

        db.refresh(user)
        logger.info(f"User {actor.user_id} changed global role of user {user_id}: {old_role.value} -> {new_role.value}")

    memberships = _memberships_by_user(db, [user.id])
    return UserView.from_db_row(user, memberships.get(user.id, []))


def delete_user(db: Session, actor: Actor, user_id: int) -> None:
    """
    Delete a user (GLOBAL_ADMIN only); memberships and issued invitations cascade.

    Raises:
        Forbidden: actor is not GLOBAL_ADMIN
        SelfActionForbidden: actor targets their own account
        NotFound: unknown user
        LastGlobalAdmin: target is the only GLOBAL_ADMIN
    """
    _require_global_admin(actor, "Only global admins can delete users")
    if actor.user_id == user_id:
        raise SelfActionForbidden("You cannot delete your own account")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFound("User not found")

    if user.role == GlobalRole.GLOBAL_ADMIN and _global_admin_count(db) <= 1:
        db.rollback()
        raise LastGlobalAdmin("Cannot delete the last global admin")

    email = user.email
    try:
        db.delete(user)
        # target_user_id would cascade away with the user, keep the id in details
        record_action(
            db,
            "user_deleted",
            actor_user_id=actor.user_id,
            details={"user_id": user_id, "email": email},
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to delete user {user_id}: {e}", exc_info=True)
        raise

    logger.info(f"User {actor.user_id} deleted user {user_id} ({email})")
