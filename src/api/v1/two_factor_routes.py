"""Two-factor (TOTP and backup code) endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response

from src.api.v1.schemas import (
    PasswordRequest,
    DisableTwoFactorRequest,
    VerifyTotpRequest,
    VerifyBackupCodeRequest,
)
from src.auth.dependencies import (
    TWO_FACTOR_COOKIE,
    get_current_user,
    get_current_user_optional,
    get_client_ip,
    get_user_agent,
    get_two_factor_service,
    set_session_cookie,
)

router = APIRouter(prefix="/api/v1/auth/two-factor", tags=["two-factor"])


def _attempt_token(request: Request, body_token: Optional[str]) -> Optional[str]:
    return body_token or request.cookies.get(TWO_FACTOR_COOKIE)


@router.post("/enable")
async def enable(body: PasswordRequest, current_user: dict = Depends(get_current_user)):
    return get_two_factor_service().enable(current_user["user_id"], body.password)


@router.post("/disable")
async def disable(body: DisableTwoFactorRequest, current_user: dict = Depends(get_current_user)):
    return get_two_factor_service().disable(current_user["user_id"], body.password)


@router.post("/get-totp-uri")
async def get_totp_uri(body: PasswordRequest, current_user: dict = Depends(get_current_user)):
    return get_two_factor_service().get_totp_uri(current_user["user_id"], body.password)


@router.post("/generate-backup-codes")
async def generate_backup_codes(body: PasswordRequest, current_user: dict = Depends(get_current_user)):
    return get_two_factor_service().generate_backup_codes(current_user["user_id"], body.password)


@router.post("/verify-totp")
async def verify_totp(
    body: VerifyTotpRequest,
    request: Request,
    response: Response,
    current_user: Optional[dict] = Depends(get_current_user_optional),
):
    """Signed in: confirms enrolment. Otherwise: completes a pending sign-in."""
    service = get_two_factor_service()
    if current_user is not None:
        return service.verify_totp(body.code, user_id=current_user["user_id"])

    result = service.verify_totp(
        body.code,
        attempt_token=_attempt_token(request, body.two_factor_token),
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    response.delete_cookie(TWO_FACTOR_COOKIE, path="/")
    set_session_cookie(response, result)
    return result


@router.post("/verify-backup-code")
async def verify_backup_code(body: VerifyBackupCodeRequest, request: Request, response: Response):
    result = get_two_factor_service().verify_backup_code(
        body.code,
        _attempt_token(request, body.two_factor_token),
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    response.delete_cookie(TWO_FACTOR_COOKIE, path="/")
    set_session_cookie(response, result)
    return result
