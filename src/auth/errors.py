"""
API Errors
==========

A single exception type carrying an HTTP status, a stable machine-readable
code and a human message. `main.py` renders it as JSON.
"""

from typing import Optional

AUTH_ERROR_CODES = {
    "USER_NOT_FOUND": "User not found",
    "USER_ALREADY_EXISTS": "User already exists",
    "INVALID_EMAIL": "Invalid email",
    "INVALID_EMAIL_OR_PASSWORD": "Invalid email or password",
    "INVALID_PASSWORD": "Invalid password",
    "PASSWORD_TOO_SHORT": "Password too short",
    "PASSWORD_TOO_LONG": "Password too long",
    "PASSWORD_ALREADY_SET": "User already has a password set",
    "CREDENTIAL_ACCOUNT_NOT_FOUND": "Credential account not found",
    "EMAIL_NOT_VERIFIED": "Email not verified",
    "EMAIL_ALREADY_VERIFIED": "Email is already verified",
    "EMAIL_DOES_NOT_MATCH": "Email does not match",
    "INVALID_TOKEN": "Invalid token",
    "TOKEN_EXPIRED": "Token expired",
    "SESSION_NOT_FOUND": "Session not found",
    "FAILED_TO_UNLINK_LAST_ACCOUNT": "You can't unlink your last account",
    "ACCOUNT_NOT_FOUND": "Account not found",
    "ACCOUNT_NOT_LINKED": "Account not linked",
    "PROVIDER_NOT_FOUND": "Provider not found",
    "INVALID_STATE": "Invalid OAuth state",
    "INVALID_CALLBACK_URL": "Invalid callbackURL",
    "INVALID_ERROR_CALLBACK_URL": "Invalid errorCallbackURL",
    "INVALID_REDIRECT_URL": "Invalid redirectURL",
    "OAUTH_FAILED": "Failed to complete social sign-in",
    "INVALID_CODE": "Invalid code",
    "INVALID_BACKUP_CODE": "Invalid backup code",
    "INVALID_TWO_FACTOR_COOKIE": "Invalid two factor cookie",
    "TWO_FACTOR_NOT_ENABLED": "Two factor isn't enabled",
    "TWO_FACTOR_SECRET_UNREADABLE": "Two factor secret could not be read",
    "TOO_MANY_ATTEMPTS": "Too many attempts, please sign in again",
    "PASSKEY_NOT_FOUND": "Passkey not found",
    "CHALLENGE_NOT_FOUND": "Challenge not found",
    "FAILED_TO_VERIFY_REGISTRATION": "Failed to verify registration",
    "AUTHENTICATION_FAILED": "Authentication failed",
    "UNAUTHORIZED": "Unauthorized",
    "FORBIDDEN": "Forbidden",
}

ADMIN_ERROR_CODES = {
    "BANNED_USER": "You have been banned from this application",
    "YOU_CANNOT_BAN_YOURSELF": "You cannot ban yourself",
    "YOU_CANNOT_REMOVE_YOURSELF": "You cannot remove yourself",
    "NOT_IMPERSONATING": "You are not impersonating anyone",
    "INVALID_FILTERS": "Invalid filters format",
    "INVALID_SORT_FIELD": "Invalid sort field",
    "INVALID_FILE_TYPE": "Invalid file type. Only JPEG, PNG, WebP, and GIF are allowed.",
    "FILE_TOO_LARGE": "File too large. Maximum size is 5MB.",
    "NO_FILE_PROVIDED": "No file provided",
}

RBAC_ERROR_CODES = {
    "PERMISSION_NOT_FOUND": "Permission not found.",
    "PERMISSION_ALREADY_EXISTS": "Permission with this key already exists.",
    "ROLE_NOT_FOUND": "Role not found.",
    "ROLE_ALREADY_EXISTS": "Role with this key already exists.",
    "INVALID_PERMISSION": "Invalid permission.",
    "INVALID_ROLE": "Invalid role.",
    "CANNOT_DELETE_ASSIGNED_PERMISSION": "Cannot delete a permission that is assigned to roles.",
    "CANNOT_DELETE_ASSIGNED_ROLE": "Cannot delete a role that is assigned to users.",
    "PERMISSION_DENIED": "You don't have permission to perform this action.",
    "INVALID_PERMISSION_KEY": "Invalid permission key.",
    "INVALID_ROLE_KEY": "Invalid role key.",
    "USER_NOT_FOUND": "User not found.",
}

_ALL_CODES = {**AUTH_ERROR_CODES, **ADMIN_ERROR_CODES}


class APIError(Exception):
    """Error raised by services and rendered by the API error handler"""

    def __init__(self, status_code: int, code: str, message: Optional[str] = None):
        self.status_code = status_code
        self.code = code
        self.message = message or _ALL_CODES.get(code) or RBAC_ERROR_CODES.get(code) or code
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "status_code": self.status_code}

    def __repr__(self):
        return f"<APIError {self.status_code} {self.code}>"


def bad_request(code: str, message: Optional[str] = None) -> APIError:
    return APIError(400, code, message)


def unauthorized(code: str = "UNAUTHORIZED", message: Optional[str] = None) -> APIError:
    return APIError(401, code, message)


def forbidden(code: str = "FORBIDDEN", message: Optional[str] = None) -> APIError:
    return APIError(403, code, message)


def not_found(code: str, message: Optional[str] = None) -> APIError:
    return APIError(404, code, message)
