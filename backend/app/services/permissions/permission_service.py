"""
Permission resolution.

Pure functions over an explicit Actor: no database access, no caching,
never raises. Callers re-evaluate on every request.
"""
from typing import Optional
from app.models.roles import GlobalRole, SiteRole
from app.services.permissions.permission_models import (
    Actor,
    Capability,
    Resource,
    SITE_SCOPED_RESOURCES,
)

# Baseline for any authenticated USER
_USER_BASE = {
    Resource.LABELS: Capability(create=True, read=True, update=True, delete=True),
    Resource.SITES: Capability(read=True),
    Resource.PORT_LABELS: Capability(create=True, read=True),
    Resource.PDU_LABELS: Capability(create=True, read=True),
    Resource.PROFILE: Capability(read=True, update=True),
    Resource.USERS: Capability.NONE,
    Resource.ADMIN: Capability.NONE,
}

# What a SITE_ADMIN membership adds on top of the baseline
_SITE_ADMIN_ELEVATION = {
    Resource.USERS: Capability(read=True, update=True),
    Resource.ADMIN: Capability(read=True, update=True),
}


def _coerce_resource(resource) -> Optional[Resource]:
    if isinstance(resource, Resource):
        return resource
    try:
        return Resource(resource)
    except ValueError:
        return None


def administered_site_ids(actor: Actor) -> frozenset:
    """Site ids on which the actor holds SITE_ADMIN."""
    return frozenset(
        site_id for site_id, role in actor.site_roles.items()
        if role == SiteRole.SITE_ADMIN
    )


def resolve(actor: Actor, resource, site_id: Optional[int] = None) -> Capability:
    """
    Compute the capability record of `actor` on `resource`.

    Args:
        actor: Explicit actor context (Actor.anonymous() when unauthenticated)
        resource: Resource (or its string value)
        site_id: Optional site context; narrows site-admin elevation to that site
            and denies site-scoped resources on sites the actor is not a member of

    Returns:
        Capability record (all false for unknown resources)
    """
    resource = _coerce_resource(resource)
    if resource is None or not actor.is_authenticated:
        return Capability.NONE

    if actor.global_role == GlobalRole.GLOBAL_ADMIN:
        return Capability.FULL

    if site_id is not None:
        membership = actor.site_role(site_id)
        if resource in SITE_SCOPED_RESOURCES and membership is None:
            return Capability.NONE
        elevated = membership == SiteRole.SITE_ADMIN
    else:
        elevated = bool(administered_site_ids(actor))

    if elevated and resource in _SITE_ADMIN_ELEVATION:
        return _SITE_ADMIN_ELEVATION[resource]
    return _USER_BASE[resource]


def resolve_all(actor: Actor, site_id: Optional[int] = None) -> dict:
    """Capability record for every resource."""
    return {resource: resolve(actor, resource, site_id) for resource in Resource}


def can_access(actor: Actor, resource, site_id: Optional[int] = None) -> bool:
    """True if the actor holds any capability on the resource."""
    return resolve(actor, resource, site_id).any


def is_admin(actor: Actor) -> bool:
    """Coarse admin-surface check: GLOBAL_ADMIN or SITE_ADMIN of at least one site."""
    if not actor.is_authenticated:
        return False
    return actor.global_role == GlobalRole.GLOBAL_ADMIN or bool(administered_site_ids(actor))


def can_administer_site(actor: Actor, site_id: int) -> bool:
    """True iff the actor is GLOBAL_ADMIN or SITE_ADMIN of exactly this site."""
    if not actor.is_authenticated:
        return False
    if actor.global_role == GlobalRole.GLOBAL_ADMIN:
        return True
    return actor.site_role(site_id) == SiteRole.SITE_ADMIN
