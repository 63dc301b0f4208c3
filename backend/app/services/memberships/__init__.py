"""
Site membership store.
"""
from app.services.memberships.membership_service import (
    get_memberships,
    get_visible_memberships,
    build_actor,
    replace_memberships,
    normalize_assignments,
    ensure_sites_exist,
    is_user_visible,
)
from app.services.memberships.membership_models import (
    MembershipView,
    SiteAssignment,
)

__all__ = [
    "get_memberships",
    "get_visible_memberships",
    "build_actor",
    "replace_memberships",
    "normalize_assignments",
    "ensure_sites_exist",
    "is_user_visible",
    "MembershipView",
    "SiteAssignment",
]
