"""
Site membership model classes.
"""
from dataclasses import dataclass
from app.models.roles import SiteRole, parse_site_role


@dataclass
class MembershipView:
    """Read-only projection of one membership for display."""
    site_id: int
    site_role: SiteRole
    site_name: str
    site_code: str

    @classmethod
    def from_db_row(cls, row) -> "MembershipView":
        """Create MembershipView from a (SiteMembership, Site) row."""
        membership, site = row
        return cls(
            site_id=site.id,
            site_role=membership.site_role,
            site_name=site.name,
            site_code=site.code,
        )

    def to_dict(self) -> dict:
        return {
            "site_id": self.site_id,
            "site_role": self.site_role.value,
            "site_name": self.site_name,
            "site_code": self.site_code,
        }


@dataclass(frozen=True)
class SiteAssignment:
    """One (site, role) pair to grant."""
    site_id: int
    site_role: SiteRole

    @classmethod
    def parse(cls, value) -> "SiteAssignment":
        """Accept a SiteAssignment, a mapping with site_id/site_role, or a (site_id, role) pair."""
        from app.services.errors import ValidationError

        if isinstance(value, cls):
            return value
        if isinstance(value, dict):
            site_id = value.get("site_id")
            role = value.get("site_role", value.get("role"))
        elif hasattr(value, "site_id"):
            site_id = value.site_id
            role = getattr(value, "site_role", None)
        else:
            try:
                site_id, role = value
            except (TypeError, ValueError):
                raise ValidationError(f"Malformed site assignment: {value!r}")
        try:
            site_id = int(site_id)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid site id in assignment: {site_id!r}")
        return cls(site_id=site_id, site_role=parse_site_role(role))
