"""
Typed failures raised by the access services.

Each failure carries the HTTP status and a stable machine-readable code;
app.main translates them 1:1 into JSON responses.
"""
from typing import Optional


class AccessError(Exception):
    """Base class for access-control failures."""
    status_code = 400
    code = "error"
    default_detail = "Request failed"

    def __init__(self, detail: Optional[str] = None, errors: Optional[list[str]] = None):
        self.detail = detail or self.default_detail
        self.errors = list(errors or [])
        super().__init__(self.detail)

    def to_dict(self) -> dict:
        payload = {"detail": self.detail, "code": self.code}
        if self.errors:
            payload["errors"] = self.errors
        return payload


class Unauthenticated(AccessError):
    status_code = 401
    code = "unauthenticated"
    default_detail = "Not authenticated"


class Forbidden(AccessError):
    status_code = 403
    code = "forbidden"
    default_detail = "You do not have permission to perform this action"


class SelfActionForbidden(Forbidden):
    code = "self_action_forbidden"
    default_detail = "You cannot perform this action on your own account"


class NotFound(AccessError):
    status_code = 404
    code = "not_found"
    default_detail = "Not found"


class Expired(AccessError):
    status_code = 410
    code = "invitation_expired"
    default_detail = "Invitation has expired"


class AlreadyUsed(AccessError):
    status_code = 409
    code = "invitation_used"
    default_detail = "Invitation has already been used"


class Conflict(AccessError):
    status_code = 409
    code = "conflict"
    default_detail = "Conflict with current state"


class LastGlobalAdmin(Conflict):
    code = "last_global_admin"
    default_detail = "At least one global admin must remain"


class ValidationError(AccessError):
    status_code = 400
    code = "validation_error"
    default_detail = "Validation failed"
