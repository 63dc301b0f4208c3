"""
Public invitation endpoints (no session required).
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import Optional
from pydantic import BaseModel
from app.core.database import get_db
from app.api.auth import user_to_response
from app.services.invitations import accept_invitation, validate_invitation

router = APIRouter()


class AcceptInvitationRequest(BaseModel):
    token: str
    password: str
    username: Optional[str] = None


@router.get("/validate/{token}", response_model=dict)
async def validate_invitation_token(
    token: str,
    db: Session = Depends(get_db)
):
    """Check an invitation link before showing the registration form."""
    return validate_invitation(db, token).to_dict()


@router.post("/accept", response_model=dict, status_code=status.HTTP_201_CREATED)
async def accept_invitation_token(
    request: AcceptInvitationRequest,
    db: Session = Depends(get_db)
):
    """Complete registration from an invitation."""
    user = accept_invitation(db, request.token, request.password, request.username)
    return {"user": user_to_response(user)}
