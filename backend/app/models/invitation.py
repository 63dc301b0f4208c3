"""
Invitation and InvitationSite models for email-based invitations.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship, validates
from app.core.database import Base
from app.models.roles import SiteRole


class Invitation(Base):
    __tablename__ = "invitations"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), nullable=False, index=True)
    username = Column(String(100), nullable=True)  # Suggested display name
    token_hash = Column(String(64), unique=True, nullable=False, index=True)  # sha256 hex, never the plaintext
    invited_by = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    used_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    inviter = relationship("User", back_populates="sent_invitations")
    sites = relationship(
        "InvitationSite",
        back_populates="invitation",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="InvitationSite.position",
    )

    @validates("email")
    def _normalize_email(self, key, value):
        return value.strip().lower() if value else value


class InvitationSite(Base):
    __tablename__ = "invitation_sites"

    id = Column(Integer, primary_key=True, index=True)
    invitation_id = Column(Integer, ForeignKey('invitations.id', ondelete='CASCADE'), nullable=False, index=True)
    site_id = Column(Integer, ForeignKey('sites.id', ondelete='CASCADE'), nullable=False, index=True)
    site_role = Column(
        SQLEnum(SiteRole, values_callable=lambda x: [e.value for e in x], native_enum=False, length=20),
        nullable=False,
    )
    position = Column(Integer, nullable=False, default=0)  # Order as submitted by the inviter

    # Relationships
    invitation = relationship("Invitation", back_populates="sites")
    site = relationship("Site")
