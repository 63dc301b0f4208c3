"""
Permission resolver for global and site-scoped roles.
"""
from app.services.permissions.permission_service import (
    resolve,
    resolve_all,
    can_access,
    is_admin,
    can_administer_site,
    administered_site_ids,
)
from app.services.permissions.permission_models import (
    Actor,
    Capability,
    Resource,
    SITE_SCOPED_RESOURCES,
)

__all__ = [
    "resolve",
    "resolve_all",
    "can_access",
    "is_admin",
    "can_administer_site",
    "administered_site_ids",
    "Actor",
    "Capability",
    "Resource",
    "SITE_SCOPED_RESOURCES",
]
