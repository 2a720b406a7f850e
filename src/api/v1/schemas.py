"""Request bodies of the v1 API."""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, EmailStr, Field, model_validator, field_validator


def _check_match(password: str, confirm: Optional[str]):
    if confirm is not None and confirm != password:
        raise ValueError("Passwords do not match.")


# ============================================================================
# Email & password
# ============================================================================

class SignUpRequest(BaseModel):
    name: str = Field(..., min_length=1, description="Display name")
    email: EmailStr
    password: str = Field(..., min_length=8)
    confirm_password: Optional[str] = None
    image: Optional[str] = None
    callback_url: Optional[str] = Field(None, alias="callbackURL")

    model_config = {"populate_by_name": True}

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Name is required.")
        return value

    @model_validator(mode="after")
    def passwords_match(self):
        _check_match(self.password, self.confirm_password)
        return self


class SignInRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)
    remember_me: bool = True
    callback_url: Optional[str] = Field(None, alias="callbackURL")

    model_config = {"populate_by_name": True}


class EmailRequest(BaseModel):
    email: EmailStr
    callback_url: Optional[str] = Field(None, alias="callbackURL")
    redirect_to: Optional[str] = Field(None, alias="redirectTo")

    model_config = {"populate_by_name": True}


class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str = Field(..., min_length=8)
    confirm_password: Optional[str] = None

    @model_validator(mode="after")
    def passwords_match(self):
        _check_match(self.new_password, self.confirm_password)
        return self


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8)
    confirm_password: Optional[str] = None
    revoke_other_sessions: bool = False

    @model_validator(mode="after")
    def passwords_match(self):
        _check_match(self.new_password, self.confirm_password)
        return self


class SetPasswordRequest(BaseModel):
    new_password: str = Field(..., min_length=8)


class UpdateUserRequest(BaseModel):
    name: Optional[str] = None
    image: Optional[str] = None
    bio: Optional[str] = None
    phone: Optional[str] = None
    website_url: Optional[str] = None
    linkedin_url: Optional[str] = None
    github_url: Optional[str] = None
    x_url: Optional[str] = None
    job_title: Optional[str] = None
    company: Optional[str] = None
    department: Optional[str] = None
    location: Optional[str] = None


class ChangeEmailRequest(BaseModel):
    new_email: EmailStr
    callback_url: Optional[str] = Field(None, alias="callbackURL")

    model_config = {"populate_by_name": True}


class DeleteUserRequest(BaseModel):
    password: Optional[str] = None


class RevokeSessionRequest(BaseModel):
    token: str


class UnlinkAccountRequest(BaseModel):
    provider_id: str
    account_id: Optional[str] = None


class SocialSignInRequest(BaseModel):
    provider: str
    callback_url: Optional[str] = Field(None, alias="callbackURL")
    error_callback_url: Optional[str] = Field(None, alias="errorCallbackURL")

    model_config = {"populate_by_name": True}


# ============================================================================
# Two-factor
# ============================================================================

class PasswordRequest(BaseModel):
    password: str = Field(..., min_length=1)


class DisableTwoFactorRequest(BaseModel):
    password: str = Field(..., min_length=1)
    confirmed: bool = Field(False, validate_default=True)

    @field_validator("confirmed")
    @classmethod
    def must_confirm(cls, value: bool) -> bool:
        if not value:
            raise ValueError("You must confirm that you want to disable two-factor authentication.")
        return value


class VerifyTotpRequest(BaseModel):
    code: str = Field(..., pattern=r"^\d{6}$")
    trust_device: bool = False
    two_factor_token: Optional[str] = None


class VerifyBackupCodeRequest(BaseModel):
    code: str = Field(..., min_length=1)
    two_factor_token: Optional[str] = None


# ============================================================================
# Passkeys
# ============================================================================

class PasskeyRegistrationRequest(BaseModel):
    response: Dict[str, Any]
    name: Optional[str] = None
    challenge_id: Optional[str] = None


class PasskeyAuthenticationRequest(BaseModel):
    response: Dict[str, Any]
    challenge_id: Optional[str] = None


class UpdatePasskeyRequest(BaseModel):
    id: str
    name: str = Field(..., min_length=1)


class DeletePasskeyRequest(BaseModel):
    id: str


# ============================================================================
# Admin
# ============================================================================

class UserIdRequest(BaseModel):
    user_id: str = Field(..., alias="userId")

    model_config = {"populate_by_name": True}


class AdminCreateUserRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    name: str = Field(..., min_length=1)
    role: Optional[Union[str, List[str]]] = None
    data: Optional[Dict[str, Any]] = None


class SetRoleRequest(UserIdRequest):
    role: Union[str, List[str]]


class BanUserRequest(UserIdRequest):
    ban_reason: Optional[str] = None
    ban_expires_in: Optional[int] = Field(None, gt=0, description="Seconds until the ban lifts")


class SessionTokenRequest(BaseModel):
    session_token: str = Field(..., alias="sessionToken")

    model_config = {"populate_by_name": True}


class SetUserPasswordRequest(UserIdRequest):
    new_password: str = Field(..., min_length=1)


class AdminUpdateUserRequest(UserIdRequest):
    data: Dict[str, Any]


# ============================================================================
# RBAC
# ============================================================================

class RoleCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    key: Any
    description: Optional[str] = None
    permission_ids: Optional[List[str]] = None
    is_active: bool = True


class RoleUpdateRequest(BaseModel):
    role_id: str
    name: Optional[str] = None
    key: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None
    permission_ids: Optional[List[str]] = None


class PermissionCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    key: Any
    description: Optional[str] = None
    role_ids: Optional[List[str]] = None
    is_active: bool = True


class PermissionUpdateRequest(BaseModel):
    permission_id: str
    name: Optional[str] = None
    key: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None
    role_ids: Optional[List[str]] = None


class RoleIdRequest(BaseModel):
    role_id: str


class PermissionIdRequest(BaseModel):
    permission_id: str


class RolePermissionRequest(BaseModel):
    role_id: str
    permission_id: str


class UserRoleRequest(BaseModel):
    user_id: str
    role_id: str


class CheckPermissionRequest(BaseModel):
    user_id: str
    permission_key: str


class HasPermissionRequest(BaseModel):
    permission_key: str


class SetUserRolesRequest(BaseModel):
    user_id: str
    role_ids: List[str]


class RBACUpdateUserRequest(BaseModel):
    user_id: str
    role_ids: Optional[List[str]] = None
