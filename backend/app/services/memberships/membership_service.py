"""
Site membership store.

The membership set of a user is only ever replaced wholesale.
"""
import logging
from typing import Iterable, Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from app.models.roles import GlobalRole
from app.models.site import Site, SiteMembership
from app.models.user import User
from app.services.audit import record_action
from app.services.errors import Forbidden, NotFound, Unauthenticated, ValidationError
from app.services.memberships.membership_models import MembershipView, SiteAssignment
from app.services.permissions import Actor, administered_site_ids, is_admin

logger = logging.getLogger(__name__)


def get_memberships(db: Session, user_id: int) -> list[MembershipView]:
    """
    Get all memberships of a user, ordered by site code.

    Args:
        db: Database session
        user_id: User ID

    Returns:
        List of MembershipView (empty if the user has none)
    """
    rows = db.query(SiteMembership, Site).join(
        Site, Site.id == SiteMembership.site_id
    ).filter(
        SiteMembership.user_id == user_id
    ).order_by(Site.code).all()

    return [MembershipView.from_db_row(row) for row in rows]


def build_actor(db: Session, user: Optional[User]) -> Actor:
    """Build the explicit actor context from the user's current memberships."""
    if user is None or not user.is_active:
        return Actor.anonymous()

    rows = db.query(SiteMembership.site_id, SiteMembership.site_role).filter(
        SiteMembership.user_id == user.id
    ).all()

    return Actor(
        user_id=user.id,
        global_role=GlobalRole(user.role),
        site_roles={site_id: site_role for site_id, site_role in rows},
    )


def normalize_assignments(assignments: Iterable, allow_empty: bool = True) -> list[SiteAssignment]:
    """
    Parse assignments and reject duplicates.

    Raises:
        ValidationError: malformed pair, unknown role, duplicate site or (when
            allow_empty is False) an empty set
    """
    parsed = [SiteAssignment.parse(item) for item in (assignments or [])]

    if not parsed and not allow_empty:
        raise ValidationError("At least one site assignment is required")

    seen = set()
    duplicates = []
    for assignment in parsed:
        if assignment.site_id in seen:
            duplicates.append(assignment.site_id)
        seen.add(assignment.site_id)
    if duplicates:
        raise ValidationError(
            "Each site may only be assigned once",
            errors=[f"Duplicate site id: {site_id}" for site_id in sorted(set(duplicates))],
        )

    return parsed


def ensure_sites_exist(db: Session, site_ids: Iterable[int]) -> None:
    """Raise NotFound if any of the site ids is unknown."""
    wanted = set(site_ids)
    if not wanted:
        return
    found = {row[0] for row in db.query(Site.id).filter(Site.id.in_(wanted)).all()}
    missing = sorted(wanted - found)
    if missing:
        raise NotFound(f"Site not found: {', '.join(str(site_id) for site_id in missing)}")


def is_user_visible(db: Session, actor: Actor, user_id: int) -> bool:
    """GLOBAL_ADMIN sees everyone; SITE_ADMIN sees users with a membership on a site they administer."""
    if actor.is_global_admin:
        return True
    administered = administered_site_ids(actor)
    if not administered:
        return False
    return db.query(SiteMembership.id).filter(
        SiteMembership.user_id == user_id,
        SiteMembership.site_id.in_(administered),
    ).first() is not None


def _get_target(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFound("User not found")
    return user


def get_visible_memberships(db: Session, actor: Actor, user_id: int) -> list[MembershipView]:
    """
    Memberships of a user as seen by an admin actor.

    SITE_ADMIN only sees memberships on sites they administer.

    Raises:
        Forbidden: actor is not an admin, or the target is outside their sites
        NotFound: unknown user
    """
    if not actor.is_authenticated:
        raise Unauthenticated()
    if not is_admin(actor):
        raise Forbidden("Admin access required")

    _get_target(db, user_id)
    memberships = get_memberships(db, user_id)
    if actor.is_global_admin:
        return memberships

    if not is_user_visible(db, actor, user_id):
        raise Forbidden("You can only view users of sites you administer")
    administered = administered_site_ids(actor)
    return [m for m in memberships if m.site_id in administered]


def replace_memberships(
    db: Session,
    actor: Actor,
    user_id: int,
    assignments: Iterable,
) -> list[MembershipView]:
    """
    Replace a user's site memberships.

    GLOBAL_ADMIN replaces the whole set. SITE_ADMIN replaces only the part on
    sites they administer; memberships on other sites are kept as they are.

    Args:
        db: Database session
        actor: Acting admin
        user_id: Target user ID
        assignments: Iterable of SiteAssignment / {site_id, site_role} / (site_id, role)

    Returns:
        The target's full membership set after the change

    Raises:
        Forbidden: actor lacks authority over the target or an assigned site
        ValidationError: duplicate sites or unknown roles
        NotFound: unknown user or site
    """
    if not actor.is_authenticated:
        raise Unauthenticated()
    if not is_admin(actor):
        raise Forbidden("Admin access required")

    parsed = normalize_assignments(assignments)
    target = _get_target(db, user_id)

    administered = administered_site_ids(actor)
    if not actor.is_global_admin:
        if target.role == GlobalRole.GLOBAL_ADMIN:
            raise Forbidden("Site admins cannot modify a global admin")
        if not is_user_visible(db, actor, user_id):
            raise Forbidden("You can only manage users of sites you administer")
        outside = sorted({a.site_id for a in parsed if a.site_id not in administered})
        if outside:
            raise Forbidden(
                f"You are not an admin of site(s): {', '.join(str(site_id) for site_id in outside)}"
            )

    ensure_sites_exist(db, [a.site_id for a in parsed])

    try:
        query = db.query(SiteMembership).filter(SiteMembership.user_id == user_id)
        if not actor.is_global_admin:
            query = query.filter(SiteMembership.site_id.in_(administered))
        query.delete(synchronize_session="fetch")

        for assignment in parsed:
            db.add(SiteMembership(
                user_id=user_id,
                site_id=assignment.site_id,
                site_role=assignment.site_role,
            ))

        record_action(
            db,
            "memberships_replaced",
            actor_user_id=actor.user_id,
            target_user_id=target.id,
            details={
                "assignments": [
                    {"site_id": a.site_id, "site_role": a.site_role.value} for a in parsed
                ],
                "scope": "all" if actor.is_global_admin else sorted(administered),
            },
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to replace memberships for user {user_id}: {e}", exc_info=True)
        raise

    logger.info(f"User {actor.user_id} replaced memberships of user {user_id} ({len(parsed)} assignment(s))")
    return get_memberships(db, user_id)
