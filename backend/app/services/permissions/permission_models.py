"""
Permission model classes.
"""
import enum
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional
from app.models.roles import GlobalRole, SiteRole


class Resource(str, enum.Enum):
    """Closed set of protected resources."""
    LABELS = "labels"
    SITES = "sites"
    PORT_LABELS = "port_labels"
    PDU_LABELS = "pdu_labels"
    PROFILE = "profile"
    USERS = "users"
    ADMIN = "admin"


# Resources whose data belongs to a single site
SITE_SCOPED_RESOURCES = frozenset({
    Resource.LABELS,
    Resource.SITES,
    Resource.PORT_LABELS,
    Resource.PDU_LABELS,
})


@dataclass(frozen=True)
class Capability:
    """Capability record for one actor on one resource."""
    create: bool = False
    read: bool = False
    update: bool = False
    delete: bool = False

    @property
    def any(self) -> bool:
        return self.create or self.read or self.update or self.delete

    def to_dict(self) -> dict:
        return {
            "create": self.create,
            "read": self.read,
            "update": self.update,
            "delete": self.delete,
        }


Capability.NONE = Capability()
Capability.FULL = Capability(create=True, read=True, update=True, delete=True)


@dataclass(frozen=True)
class Actor:
    """
    Explicit identity context passed to every permission check.

    site_roles maps site id -> SiteRole and is read-only.
    """
    user_id: Optional[int] = None
    global_role: Optional[GlobalRole] = None
    site_roles: Mapping[int, SiteRole] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "site_roles", MappingProxyType(dict(self.site_roles)))

    @classmethod
    def anonymous(cls) -> "Actor":
        return cls()

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None and self.global_role is not None

    @property
    def is_global_admin(self) -> bool:
        return self.is_authenticated and self.global_role == GlobalRole.GLOBAL_ADMIN

    def site_role(self, site_id: int) -> Optional[SiteRole]:
        return self.site_roles.get(site_id)
