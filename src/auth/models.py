"""
Authentication Models
=====================

Users, sessions, linked accounts, verification records, two-factor secrets
and passkeys.
"""

from sqlalchemy import (
    Column, String, DateTime, Boolean, ForeignKey, Integer, Text, JSON, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from src.database.base import Base
from src.utils.helpers import generate_id, split_roles
from src.utils.time import now_utc, isoformat

CREDENTIAL_PROVIDER = "credential"

# Profile columns a user (or an admin) may edit directly
PROFILE_FIELDS = (
    "name", "image", "bio", "phone", "website_url", "linkedin_url", "github_url",
    "x_url", "job_title", "company", "department", "location",
)


class UserModel(Base):
    """User database model"""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    email_verified = Column(Boolean, default=False, nullable=False)
    image = Column(String(1024), nullable=True)

    # Admin plugin columns
    role = Column(String(255), default="user", nullable=True)
    banned = Column(Boolean, default=False, nullable=False)
    ban_reason = Column(Text, nullable=True)
    ban_expires = Column(DateTime(timezone=True), nullable=True)

    two_factor_enabled = Column(Boolean, default=False, nullable=False)
    last_login_method = Column(String(50), nullable=True)

    # Profile
    bio = Column(Text, nullable=True)
    phone = Column(String(50), nullable=True)
    website_url = Column(String(512), nullable=True)
    linkedin_url = Column(String(512), nullable=True)
    github_url = Column(String(512), nullable=True)
    x_url = Column(String(512), nullable=True)
    job_title = Column(String(255), nullable=True)
    company = Column(String(255), nullable=True)
    department = Column(String(255), nullable=True)
    location = Column(String(255), nullable=True)
    # `metadata` is reserved on declarative classes
    user_metadata = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=now_utc, onupdate=now_utc, nullable=False)
    created_by = Column(String(255), nullable=True)
    updated_by = Column(String(255), nullable=True)

    sessions = relationship("SessionModel", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)
    accounts = relationship("AccountModel", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)
    passkeys = relationship("PasskeyModel", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)
    two_factor = relationship("TwoFactorModel", back_populates="user", uselist=False,
                              cascade="all, delete-orphan", passive_deletes=True)
    user_roles = relationship("UserRole", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)

    @property
    def roles(self):
        return split_roles(self.role)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "email_verified": bool(self.email_verified),
            "image": self.image,
            "role": self.role,
            "banned": bool(self.banned),
            "ban_reason": self.ban_reason,
            "ban_expires": isoformat(self.ban_expires),
            "two_factor_enabled": bool(self.two_factor_enabled),
            "last_login_method": self.last_login_method,
            "bio": self.bio,
            "phone": self.phone,
            "website_url": self.website_url,
            "linkedin_url": self.linkedin_url,
            "github_url": self.github_url,
            "x_url": self.x_url,
            "job_title": self.job_title,
            "company": self.company,
            "department": self.department,
            "location": self.location,
            "metadata": self.user_metadata or {},
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
            "created_by": self.created_by,
            "updated_by": self.updated_by,
        }

    def __repr__(self):
        return f"<User {self.email}>"


class SessionModel(Base):
    """Login session, addressed by an opaque token"""
    __tablename__ = "sessions"

    id = Column(String(36), primary_key=True, default=generate_id)
    token = Column(String(255), unique=True, nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    impersonated_by = Column(String(36), nullable=True)
    remember_me = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=now_utc, onupdate=now_utc, nullable=False)

    user = relationship("UserModel", back_populates="sessions")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "token": self.token,
            "user_id": self.user_id,
            "expires_at": isoformat(self.expires_at),
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "impersonated_by": self.impersonated_by,
            "remember_me": bool(self.remember_me),
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }


class AccountModel(Base):
    """A sign-in method linked to a user: password credential or OAuth provider"""
    __tablename__ = "accounts"
    __table_args__ = (
        UniqueConstraint("provider_id", "account_id", name="uq_accounts_provider_account"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    account_id = Column(String(255), nullable=False)
    provider_id = Column(String(50), nullable=False)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    password = Column(String(255), nullable=True)
    access_token = Column(Text, nullable=True)
    refresh_token = Column(Text, nullable=True)
    id_token = Column(Text, nullable=True)
    access_token_expires_at = Column(DateTime(timezone=True), nullable=True)
    scope = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=now_utc, onupdate=now_utc, nullable=False)

    user = relationship("UserModel", back_populates="accounts")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "provider_id": self.provider_id,
            "account_id": self.account_id,
            "scope": self.scope,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }


class VerificationModel(Base):
    """Short-lived key/value records (reset tokens, OAuth state, challenges)"""
    __tablename__ = "verifications"

    id = Column(String(36), primary_key=True, default=generate_id)
    identifier = Column(String(255), nullable=False, index=True)
    value = Column(Text, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)


class TwoFactorModel(Base):
    """Encrypted TOTP secret and backup codes"""
    __tablename__ = "two_factors"

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    secret = Column(Text, nullable=False)
    backup_codes = Column(Text, nullable=False)

    user = relationship("UserModel", back_populates="two_factor")


class PasskeyModel(Base):
    """WebAuthn credential"""
    __tablename__ = "passkeys"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    credential_id = Column(String(1024), unique=True, nullable=False)
    public_key = Column(Text, nullable=False)
    counter = Column(Integer, default=0, nullable=False)
    device_type = Column(String(32), nullable=True)
    backed_up = Column(Boolean, default=False, nullable=False)
    transports = Column(String(255), nullable=True)
    aaguid = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)

    user = relationship("UserModel", back_populates="passkeys")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "credential_id": self.credential_id,
            "device_type": self.device_type,
            "backed_up": bool(self.backed_up),
            "transports": self.transports.split(",") if self.transports else [],
            "aaguid": self.aaguid,
            "created_at": isoformat(self.created_at),
        }
