"""
Authentication endpoints

Email/password sign-up and sign-in, sessions, verification, password
management, profile, linked accounts and social sign-in.
"""

from typing import Optional
from urllib.parse import urlencode
import logging

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from src.api.v1.schemas import (
    SignUpRequest,
    SignInRequest,
    EmailRequest,
    ResetPasswordRequest,
    ChangePasswordRequest,
    SetPasswordRequest,
    UpdateUserRequest,
    ChangeEmailRequest,
    DeleteUserRequest,
    RevokeSessionRequest,
    UnlinkAccountRequest,
    SocialSignInRequest,
)
from src.auth.dependencies import (
    SESSION_COOKIE,
    ADMIN_SESSION_COOKIE,
    TWO_FACTOR_COOKIE,
    get_session_token,
    get_current_user,
    get_current_user_optional,
    get_client_ip,
    get_user_agent,
    get_auth_service,
    get_oauth_service,
    set_cookie,
    set_session_cookie,
)
from src.auth.errors import APIError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


def _with_query(url: str, **params) -> str:
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{urlencode(params)}"


# ============================================================================
# Sign up / sign in
# ============================================================================

@router.post("/sign-up/email")
async def sign_up_email(body: SignUpRequest, request: Request, response: Response):
    result = get_auth_service().sign_up_email(
        name=body.name,
        email=body.email,
        password=body.password,
        image=body.image,
        callback_url=body.callback_url,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    set_session_cookie(response, result)
    return result


@router.post("/sign-in/email")
async def sign_in_email(body: SignInRequest, request: Request, response: Response):
    result = get_auth_service().sign_in_email(
        email=body.email,
        password=body.password,
        remember_me=body.remember_me,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
        callback_url=body.callback_url,
    )
    if result.get("two_factor_redirect"):
        set_cookie(response, TWO_FACTOR_COOKIE, result["two_factor_token"], max_age=600)
    else:
        set_session_cookie(response, result)
    return result


@router.post("/sign-out")
async def sign_out(response: Response, token: Optional[str] = Depends(get_session_token)):
    result = get_auth_service().sign_out(token)
    response.delete_cookie(SESSION_COOKIE, path="/")
    response.delete_cookie(ADMIN_SESSION_COOKIE, path="/")
    return result


# ============================================================================
# Sessions
# ============================================================================

@router.get("/get-session")
async def get_session(current_user: Optional[dict] = Depends(get_current_user_optional)):
    if current_user is None:
        return None
    return {"session": current_user["session"], "user": current_user["user"]}


@router.get("/list-sessions")
async def list_sessions(current_user: dict = Depends(get_current_user)):
    return get_auth_service().list_sessions(current_user["user_id"], current_user["token"])


@router.post("/revoke-session")
async def revoke_session(body: RevokeSessionRequest, current_user: dict = Depends(get_current_user)):
    return get_auth_service().revoke_session(current_user["user_id"], body.token)


@router.post("/revoke-sessions")
async def revoke_sessions(response: Response, current_user: dict = Depends(get_current_user)):
    result = get_auth_service().revoke_sessions(current_user["user_id"])
    response.delete_cookie(SESSION_COOKIE, path="/")
    return result


@router.post("/revoke-other-sessions")
async def revoke_other_sessions(current_user: dict = Depends(get_current_user)):
    return get_auth_service().revoke_other_sessions(current_user["user_id"], current_user["token"])


# ============================================================================
# Email verification
# ============================================================================

@router.post("/send-verification-email")
async def send_verification_email(body: EmailRequest):
    return get_auth_service().send_verification_email(body.email, body.callback_url)


@router.get("/verify-email")
async def verify_email(request: Request, token: str, callbackURL: Optional[str] = None):
    """Browsers land here from the email link; with a callback URL they are redirected back"""
    service = get_auth_service()
    service.check_callback_url(callbackURL)
    try:
        result = service.verify_email(token, get_client_ip(request), get_user_agent(request))
    except APIError as e:
        if callbackURL:
            return RedirectResponse(_with_query(callbackURL, error=e.code), status_code=302)
        raise

    if callbackURL:
        redirect = RedirectResponse(callbackURL, status_code=302)
        set_session_cookie(redirect, result)
        return redirect

    json_response = JSONResponse(result)
    set_session_cookie(json_response, result)
    return json_response


# ============================================================================
# Passwords
# ============================================================================

@router.post("/request-password-reset")
async def request_password_reset(body: EmailRequest):
    return get_auth_service().request_password_reset(body.email, body.redirect_to)


@router.post("/reset-password")
async def reset_password(body: ResetPasswordRequest):
    return get_auth_service().reset_password(body.token, body.new_password)


@router.post("/change-password")
async def change_password(body: ChangePasswordRequest, current_user: dict = Depends(get_current_user)):
    return get_auth_service().change_password(
        current_user["user_id"],
        body.current_password,
        body.new_password,
        revoke_other_sessions=body.revoke_other_sessions,
        current_token=current_user["token"],
    )


@router.post("/set-password")
async def set_password(body: SetPasswordRequest, current_user: dict = Depends(get_current_user)):
    return get_auth_service().set_password(current_user["user_id"], body.new_password)


# ============================================================================
# Profile
# ============================================================================

@router.post("/update-user")
async def update_user(body: UpdateUserRequest, current_user: dict = Depends(get_current_user)):
    fields = body.model_dump(exclude_unset=True)
    return get_auth_service().update_user(current_user["user_id"], fields, actor_email=current_user["email"])


@router.post("/change-email")
async def change_email(body: ChangeEmailRequest, current_user: dict = Depends(get_current_user)):
    return get_auth_service().change_email(current_user["user_id"], body.new_email, body.callback_url)


@router.post("/delete-user")
async def delete_user(body: DeleteUserRequest, response: Response, current_user: dict = Depends(get_current_user)):
    result = get_auth_service().delete_user(current_user["user_id"], body.password)
    response.delete_cookie(SESSION_COOKIE, path="/")
    return result


# ============================================================================
# Linked accounts & social sign-in
# ============================================================================

@router.get("/list-accounts")
async def list_accounts(current_user: dict = Depends(get_current_user)):
    return get_auth_service().list_accounts(current_user["user_id"])


@router.post("/unlink-account")
async def unlink_account(body: UnlinkAccountRequest, current_user: dict = Depends(get_current_user)):
    return get_auth_service().unlink_account(current_user["user_id"], body.provider_id, body.account_id)


@router.post("/sign-in/social")
async def sign_in_social(body: SocialSignInRequest):
    return get_oauth_service().authorization_url(body.provider, body.callback_url, body.error_callback_url)


@router.post("/link-social")
async def link_social(body: SocialSignInRequest, current_user: dict = Depends(get_current_user)):
    return get_oauth_service().authorization_url(
        body.provider, body.callback_url, body.error_callback_url, link_user_id=current_user["user_id"]
    )


@router.get("/callback/{provider}")
async def oauth_callback(provider: str, request: Request, code: Optional[str] = None,
                         state: Optional[str] = None, error: Optional[str] = None):
    service = get_oauth_service()
    if error or not code or not state:
        logger.warning(f"⚠️  OAuth callback from {provider} without code: {error}")
        return RedirectResponse(_with_query(f"{service.app_url}/login", error=error or "OAUTH_FAILED"),
                                status_code=302)
    try:
        result = service.handle_callback(provider, code, state, get_client_ip(request), get_user_agent(request))
    except APIError as e:
        return RedirectResponse(_with_query(f"{service.app_url}/login", error=e.code), status_code=302)

    redirect = RedirectResponse(service.redirect_target(result.get("url")), status_code=302)
    set_session_cookie(redirect, result)
    return redirect
