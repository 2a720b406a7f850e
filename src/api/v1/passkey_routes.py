"""WebAuthn passkey endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response

from src.api.v1.schemas import (
    PasskeyRegistrationRequest,
    PasskeyAuthenticationRequest,
    UpdatePasskeyRequest,
    DeletePasskeyRequest,
)
from src.auth.dependencies import (
    PASSKEY_CHALLENGE_COOKIE,
    get_current_user,
    get_current_user_optional,
    get_client_ip,
    get_user_agent,
    get_passkey_service,
    set_cookie,
    set_session_cookie,
)

router = APIRouter(prefix="/api/v1/auth/passkey", tags=["passkey"])

CHALLENGE_MAX_AGE = 300


def _challenge_id(request: Request, body_id: Optional[str]) -> Optional[str]:
    return body_id or request.cookies.get(PASSKEY_CHALLENGE_COOKIE)


@router.get("/generate-register-options")
async def generate_register_options(
    response: Response,
    authenticatorAttachment: Optional[str] = None,
    current_user: dict = Depends(get_current_user),
):
    result = get_passkey_service().generate_registration_options(current_user["user_id"], authenticatorAttachment)
    set_cookie(response, PASSKEY_CHALLENGE_COOKIE, result["challenge_id"], max_age=CHALLENGE_MAX_AGE)
    return result


@router.post("/verify-registration")
async def verify_registration(
    body: PasskeyRegistrationRequest,
    request: Request,
    response: Response,
    current_user: dict = Depends(get_current_user),
):
    result = get_passkey_service().verify_registration(
        current_user["user_id"], body.response, _challenge_id(request, body.challenge_id), body.name
    )
    response.delete_cookie(PASSKEY_CHALLENGE_COOKIE, path="/")
    return result


@router.get("/generate-authenticate-options")
async def generate_authenticate_options(
    response: Response,
    current_user: Optional[dict] = Depends(get_current_user_optional),
):
    user_id = current_user["user_id"] if current_user else None
    result = get_passkey_service().generate_authentication_options(user_id)
    set_cookie(response, PASSKEY_CHALLENGE_COOKIE, result["challenge_id"], max_age=CHALLENGE_MAX_AGE)
    return result


@router.post("/verify-authentication")
async def verify_authentication(body: PasskeyAuthenticationRequest, request: Request, response: Response):
    result = get_passkey_service().verify_authentication(
        body.response,
        _challenge_id(request, body.challenge_id),
        get_client_ip(request),
        get_user_agent(request),
    )
    response.delete_cookie(PASSKEY_CHALLENGE_COOKIE, path="/")
    set_session_cookie(response, result)
    return result


@router.get("/list-user-passkeys")
async def list_user_passkeys(current_user: dict = Depends(get_current_user)):
    return get_passkey_service().list_user_passkeys(current_user["user_id"])


@router.post("/update-passkey")
async def update_passkey(body: UpdatePasskeyRequest, current_user: dict = Depends(get_current_user)):
    return get_passkey_service().update_passkey(current_user["user_id"], body.id, body.name)


@router.post("/delete-passkey")
async def delete_passkey(body: DeletePasskeyRequest, current_user: dict = Depends(get_current_user)):
    return get_passkey_service().delete_passkey(current_user["user_id"], body.id)
