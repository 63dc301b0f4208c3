"""
User model for authentication.
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum as SQLEnum
from sqlalchemy.orm import relationship, validates
from sqlalchemy.sql import func
from app.core.database import Base
from app.models.roles import GlobalRole


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)  # Stored lower-cased
    username = Column(String(100), unique=True, index=True, nullable=False)  # Display name
    hashed_password = Column(String(255), nullable=False)
    role = Column(
        SQLEnum(GlobalRole, values_callable=lambda x: [e.value for e in x], native_enum=False, length=20),
        nullable=False,
        default=GlobalRole.USER,
    )
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    memberships = relationship(
        "SiteMembership",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    sent_invitations = relationship(
        "Invitation",
        back_populates="inviter",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @validates("email")
    def _normalize_email(self, key, value):
        return value.strip().lower() if value else value

    def is_global_admin(self) -> bool:
        """Check if user is a global admin."""
        return self.role == GlobalRole.GLOBAL_ADMIN
