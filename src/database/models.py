"""
RBAC Models
===========

Roles, permissions and the two association tables linking them to users.
Importing this module also registers the auth models, so `Base.metadata`
covers the whole schema.
"""

from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from src.database.base import Base
from src.auth.models import (  # noqa: F401  (register tables on Base)
    UserModel, SessionModel, AccountModel, VerificationModel, TwoFactorModel, PasskeyModel,
)
from src.utils.helpers import generate_id
from src.utils.time import now_utc, isoformat


class _AuditedMixin:
    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False)
    key = Column(String(100), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=now_utc, onupdate=now_utc, nullable=False)
    created_by = Column(String(255), nullable=True)
    updated_by = Column(String(255), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "key": self.key,
            "description": self.description,
            "is_active": bool(self.is_active),
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
            "created_by": self.created_by,
            "updated_by": self.updated_by,
        }


class Role(_AuditedMixin, Base):
    __tablename__ = "roles"

    role_permissions = relationship("RolePermission", back_populates="role",
                                    cascade="all, delete-orphan", passive_deletes=True)
    user_roles = relationship("UserRole", back_populates="role",
                              cascade="all, delete-orphan", passive_deletes=True)

    def __repr__(self):
        return f"<Role {self.key}>"


class Permission(_AuditedMixin, Base):
    __tablename__ = "permissions"

    role_permissions = relationship("RolePermission", back_populates="permission",
                                    cascade="all, delete-orphan", passive_deletes=True)

    def __repr__(self):
        return f"<Permission {self.key}>"


class UserRole(Base):
    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role_id", name="uq_user_roles_user_role"),)

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role_id = Column(String(36), ForeignKey("roles.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)

    user = relationship("UserModel", back_populates="user_roles")
    role = relationship("Role", back_populates="user_roles")


class RolePermission(Base):
    __tablename__ = "role_permissions"
    __table_args__ = (
        UniqueConstraint("role_id", "permission_id", name="uq_role_permissions_role_permission"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    role_id = Column(String(36), ForeignKey("roles.id", ondelete="CASCADE"), nullable=False, index=True)
    permission_id = Column(String(36), ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)

    role = relationship("Role", back_populates="role_permissions")
    permission = relationship("Permission", back_populates="role_permissions")


__all__ = [
    "Base",
    "UserModel",
    "SessionModel",
    "AccountModel",
    "VerificationModel",
    "TwoFactorModel",
    "PasskeyModel",
    "Role",
    "Permission",
    "UserRole",
    "RolePermission",
]
