"""
Admin API endpoints.

Admin access means GLOBAL_ADMIN or SITE_ADMIN of at least one site; the
services narrow every action to the sites the actor administers.
"""
import logging
from fastapi import APIRouter, Body, Depends, Query, Response, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, EmailStr
from typing import Optional, List
from app.core.database import get_db
from app.core.auth import require_admin_access, require_global_admin
from app.services.admin_overview import get_admin_overview
from app.services.email import (
    get_smtp_settings,
    load_smtp_config,
    save_smtp_settings,
    send_test_email,
)
from app.services.invitations import (
    cancel_invitation,
    issue_invitation,
    list_invitations,
    resend_invitation,
    rotate_invitation_link,
)
from app.services.memberships import get_visible_memberships, replace_memberships
from app.services.permissions import Actor, administered_site_ids
from app.services.users import delete_user, list_users, set_user_global_role

logger = logging.getLogger(__name__)

router = APIRouter()


class SiteAssignmentRequest(BaseModel):
    site_id: int
    site_role: str  # 'SITE_ADMIN' or 'SITE_USER'


class CreateInvitationRequest(BaseModel):
    email: EmailStr
    username: Optional[str] = None
    sites: List[SiteAssignmentRequest]
    expires_in_days: Optional[int] = None


class ResendInvitationRequest(BaseModel):
    expires_in_days: Optional[int] = None


class UpdateUserRoleRequest(BaseModel):
    role: str  # 'GLOBAL_ADMIN' or 'USER'


class ReplaceUserSitesRequest(BaseModel):
    sites: List[SiteAssignmentRequest]


class SmtpSettingsRequest(BaseModel):
    host: Optional[str] = None
    port: Optional[int] = None
    username: Optional[str] = None
    password: Optional[str] = None  # Omit to keep the stored password
    from_email: Optional[str] = None
    secure: Optional[bool] = None


class SmtpTestRequest(BaseModel):
    to: EmailStr


# Invitations

@router.post("/invitations", response_model=dict, status_code=status.HTTP_201_CREATED)
async def create_invitation(
    request: CreateInvitationRequest,
    actor: Actor = Depends(require_admin_access),
    db: Session = Depends(get_db)
):
    """Invite a new user to one or more sites."""
    issued = issue_invitation(
        db,
        actor,
        email=request.email,
        assignments=[a.model_dump() for a in request.sites],
        username=request.username,
        expires_in_days=request.expires_in_days,
    )
    return issued.to_dict()


@router.get("/invitations", response_model=List[dict])
async def get_invitations(
    include_used: bool = Query(False),
    actor: Actor = Depends(require_admin_access),
    db: Session = Depends(get_db)
):
    """List invitations visible to the current admin."""
    return [invitation.to_dict() for invitation in list_invitations(db, actor, include_used=include_used)]


@router.delete("/invitations/{invitation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_invitation(
    invitation_id: int,
    actor: Actor = Depends(require_admin_access),
    db: Session = Depends(get_db)
):
    """Cancel a pending or expired invitation."""
    cancel_invitation(db, actor, invitation_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/invitations/{invitation_id}/resend", response_model=dict)
async def resend_invitation_email(
    invitation_id: int,
    request: Optional[ResendInvitationRequest] = Body(None),
    actor: Actor = Depends(require_admin_access),
    db: Session = Depends(get_db)
):
    """Rotate the token, extend the expiry and email the invitation again."""
    expires_in_days = request.expires_in_days if request else None
    return resend_invitation(db, actor, invitation_id, expires_in_days=expires_in_days).to_dict()


@router.post("/invitations/{invitation_id}/link", response_model=dict)
async def rotate_invitation(
    invitation_id: int,
    actor: Actor = Depends(require_admin_access),
    db: Session = Depends(get_db)
):
    """Get a fresh direct link for a pending invitation (old link stops working)."""
    return rotate_invitation_link(db, actor, invitation_id).to_dict()


# Users

@router.get("/users", response_model=List[dict])
async def get_users(
    search: Optional[str] = Query(None),
    role: Optional[str] = Query(None),
    site_id: Optional[int] = Query(None),
    actor: Actor = Depends(require_admin_access),
    db: Session = Depends(get_db)
):
    """List users visible to the current admin."""
    return [user.to_dict() for user in list_users(db, actor, search=search, role=role, site_id=site_id)]


@router.put("/users/{user_id}/role", response_model=dict)
async def update_user_role(
    user_id: int,
    request: UpdateUserRoleRequest,
    actor: Actor = Depends(require_admin_access),
    db: Session = Depends(get_db)
):
    """Change a user's global role (global admins only)."""
    return set_user_global_role(db, actor, user_id, request.role).to_dict()


@router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_user(
    user_id: int,
    actor: Actor = Depends(require_admin_access),
    db: Session = Depends(get_db)
):
    """Delete a user (global admins only, never yourself)."""
    delete_user(db, actor, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/users/{user_id}/sites", response_model=dict)
async def get_user_sites(
    user_id: int,
    actor: Actor = Depends(require_admin_access),
    db: Session = Depends(get_db)
):
    """Site memberships of a user, limited to the sites the admin can see."""
    memberships = get_visible_memberships(db, actor, user_id)
    return {"user_id": user_id, "sites": [m.to_dict() for m in memberships]}


@router.put("/users/{user_id}/sites", response_model=dict)
async def update_user_sites(
    user_id: int,
    request: ReplaceUserSitesRequest,
    actor: Actor = Depends(require_admin_access),
    db: Session = Depends(get_db)
):
    """Replace a user's site memberships (within the admin's sites)."""
    memberships = replace_memberships(db, actor, user_id, [a.model_dump() for a in request.sites])
    if not actor.is_global_admin:
        administered = administered_site_ids(actor)
        memberships = [m for m in memberships if m.site_id in administered]
    return {"user_id": user_id, "sites": [m.to_dict() for m in memberships]}


# Overview

@router.get("/overview", response_model=dict)
async def get_overview(
    actor: Actor = Depends(require_admin_access),
    db: Session = Depends(get_db)
):
    """Dashboard counts."""
    return get_admin_overview(db, actor).to_dict()


# SMTP settings

def _smtp_settings_response(db: Session) -> dict:
    values = get_smtp_settings(db)
    effective = load_smtp_config(db)
    return {
        "host": values["smtp_host"],
        "port": values["smtp_port"],
        "username": values["smtp_username"],
        "from_email": values["smtp_from"],
        "secure": values["smtp_secure"],
        "password_set": bool(values["smtp_password"]),
        "configured": effective is not None,
        "source": effective.source if effective else None,
    }


@router.get("/settings/smtp", response_model=dict)
async def get_smtp_settings_endpoint(
    actor: Actor = Depends(require_global_admin),
    db: Session = Depends(get_db)
):
    """Stored SMTP settings (the password is never returned)."""
    return _smtp_settings_response(db)


@router.put("/settings/smtp", response_model=dict)
async def update_smtp_settings(
    request: SmtpSettingsRequest,
    actor: Actor = Depends(require_global_admin),
    db: Session = Depends(get_db)
):
    """Update SMTP settings (global admins only)."""
    save_smtp_settings(db, {
        "smtp_host": request.host,
        "smtp_port": request.port,
        "smtp_username": request.username,
        "smtp_password": request.password,
        "smtp_from": request.from_email,
        "smtp_secure": request.secure,
    })
    logger.info(f"User {actor.user_id} updated SMTP settings")
    return _smtp_settings_response(db)


@router.post("/settings/smtp/test", response_model=dict)
async def test_smtp_settings(
    request: SmtpTestRequest,
    actor: Actor = Depends(require_global_admin),
    db: Session = Depends(get_db)
):
    """Send a test email with the effective SMTP settings."""
    result = send_test_email(db, request.to)
    return {"email_sent": result.email_sent, "email_error": result.email_error}
