"""
Global and site role definitions.

Two independent axes:
- GlobalRole is organization-wide (GLOBAL_ADMIN outranks USER)
- SiteRole is held through a site membership (SITE_ADMIN outranks SITE_USER)

Roles are only ever compared within their own axis.
"""
import enum


class GlobalRole(str, enum.Enum):
    GLOBAL_ADMIN = "GLOBAL_ADMIN"
    USER = "USER"


class SiteRole(str, enum.Enum):
    SITE_ADMIN = "SITE_ADMIN"
    SITE_USER = "SITE_USER"


_GLOBAL_RANK = {
    GlobalRole.USER: 1,
    GlobalRole.GLOBAL_ADMIN: 2,
}

_SITE_RANK = {
    SiteRole.SITE_USER: 1,
    SiteRole.SITE_ADMIN: 2,
}

# Spellings written by older releases (pre site-scoping data and invitation payloads)
_LEGACY_GLOBAL = {
    "admin": GlobalRole.GLOBAL_ADMIN,
    "global_admin": GlobalRole.GLOBAL_ADMIN,
    "user": GlobalRole.USER,
}

_LEGACY_SITE = {
    "admin": SiteRole.SITE_ADMIN,
    "site_admin": SiteRole.SITE_ADMIN,
    "user": SiteRole.SITE_USER,
    "site_user": SiteRole.SITE_USER,
}


def outranks(a, b) -> bool:
    """True if role `a` is strictly higher than role `b` on the same axis."""
    if isinstance(a, GlobalRole) and isinstance(b, GlobalRole):
        return _GLOBAL_RANK[a] > _GLOBAL_RANK[b]
    if isinstance(a, SiteRole) and isinstance(b, SiteRole):
        return _SITE_RANK[a] > _SITE_RANK[b]
    raise TypeError("Global and site roles are not comparable")


def parse_global_role(value) -> GlobalRole:
    """Normalize a stored or submitted global role."""
    from app.services.errors import ValidationError

    if isinstance(value, GlobalRole):
        return value
    raw = str(value or "").strip()
    try:
        return GlobalRole(raw.upper())
    except ValueError:
        pass
    role = _LEGACY_GLOBAL.get(raw.lower())
    if role is None:
        raise ValidationError(f"Invalid global role: {value!r}. Must be GLOBAL_ADMIN or USER")
    return role


def parse_site_role(value) -> SiteRole:
    """Normalize a stored or submitted site role."""
    from app.services.errors import ValidationError

    if isinstance(value, SiteRole):
        return value
    raw = str(value or "").strip()
    try:
        return SiteRole(raw.upper())
    except ValueError:
        pass
    role = _LEGACY_SITE.get(raw.lower())
    if role is None:
        raise ValidationError(f"Invalid site role: {value!r}. Must be SITE_ADMIN or SITE_USER")
    return role
