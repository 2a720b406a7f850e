"""
Social Sign-In
==============

OAuth2 authorization-code flow for Google and GitHub over `requests`.

Account linking rules:
    - an existing (provider, account id) pair signs that user in
    - link mode attaches the provider to the signed-in user (emails must match)
    - an existing user with the same email is linked when the provider is
      trusted or reports the email as verified
    - otherwise a new user is created
"""

import logging
from typing import Optional, Dict, Any
from urllib.parse import urlencode

import requests

from src.auth.errors import APIError
from src.auth.service import check_redirect_url
from src.auth.sessions import (
    complete_sign_in, notify_new_login, session_payload,
    store_verification, find_verification, delete_verification, load_json,
)
from src.database.models import UserModel, AccountModel
from src.services import email_service
from src.utils.config_loader import ConfigLoader
from src.utils.helpers import random_string, is_trusted_url
from src.utils.time import now_utc, expires_in

logger = logging.getLogger(__name__)

SUPPORTED_OAUTH_PROVIDERS = ["credential", "google", "github"]
STATE_PREFIX = "oauth-state:"
REQUEST_TIMEOUT = 10

PROVIDERS = {
    "google": {
        "authorize_url": "https://accounts.google.com/o/oauth2/v2/auth",
        "token_url": "https://oauth2.googleapis.com/token",
        "userinfo_url": "https://openidconnect.googleapis.com/v1/userinfo",
        "scope": "openid email profile",
    },
    "github": {
        "authorize_url": "https://github.com/login/oauth/authorize",
        "token_url": "https://github.com/login/oauth/access_token",
        "userinfo_url": "https://api.github.com/user",
        "emails_url": "https://api.github.com/user/emails",
        "scope": "read:user user:email",
    },
}


class OAuthService:
    """Google / GitHub sign-in and account linking"""

    def __init__(self, db_manager, oauth_config: Optional[Dict[str, Any]] = None,
                 auth_config: Optional[Dict[str, Any]] = None):
        cfg = ConfigLoader()
        self.db_manager = db_manager
        self.oauth_config = oauth_config if oauth_config is not None else cfg.get_oauth_config()
        auth_config = auth_config if auth_config is not None else cfg.get_auth_config()
        self.linking = auth_config.get("account_linking") or {}
        self.default_role = auth_config.get("default_role", "user")
        self.api_url = cfg.get("app.api_url", "http://localhost:8000").rstrip("/")
        self.app_url = cfg.get("app.url", "http://localhost:3000").rstrip("/")
        self.trusted_origins = cfg.get_trusted_origins()
        self.state_expires_in = int(self.oauth_config.get("state_expires_in", 600))

    def _provider(self, provider: str) -> Dict[str, Any]:
        creds = self.oauth_config.get(provider) or {}
        if provider not in PROVIDERS or not creds.get("client_id") or not creds.get("client_secret"):
            raise APIError(404, "PROVIDER_NOT_FOUND")
        return {**PROVIDERS[provider], **creds}

    def redirect_uri(self, provider: str) -> str:
        return f"{self.api_url}/api/v1/auth/callback/{provider}"

    def redirect_target(self, url: Optional[str]) -> str:
        """Where the browser goes after the callback; untrusted targets fall back to the app"""
        if url and is_trusted_url(url, self.trusted_origins):
            return url
        return self.app_url

    def authorization_url(self, provider: str, callback_url: Optional[str] = None,
                          error_callback_url: Optional[str] = None,
                          link_user_id: Optional[str] = None) -> Dict[str, Any]:
        conf = self._provider(provider)
        check_redirect_url(callback_url, self.trusted_origins)
        check_redirect_url(error_callback_url, self.trusted_origins, "INVALID_ERROR_CALLBACK_URL")
        state = random_string(32)
        with self.db_manager.session_context() as db:
            store_verification(
                db,
                f"{STATE_PREFIX}{state}",
                {
                    "provider": provider,
                    "callback_url": callback_url or self.app_url,
                    "error_callback_url": error_callback_url,
                    "link_user_id": link_user_id,
                },
                self.state_expires_in,
            )

        params = {
            "client_id": conf["client_id"],
            "redirect_uri": self.redirect_uri(provider),
            "response_type": "code",
            "scope": conf["scope"],
            "state": state,
        }
        if provider == "google":
            params["access_type"] = "offline"
            params["prompt"] = "select_account"
        return {"url": f"{conf['authorize_url']}?{urlencode(params)}", "redirect": True}

    # ------------------------------------------------------------------
    # Provider calls
    # ------------------------------------------------------------------

    def _exchange_code(self, provider: str, conf: Dict[str, Any], code: str) -> Dict[str, Any]:
        resp = requests.post(
            conf["token_url"],
            data={
                "client_id": conf["client_id"],
                "client_secret": conf["client_secret"],
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": self.redirect_uri(provider),
            },
            headers={"Accept": "application/json"},
            timeout=REQUEST_TIMEOUT,
        )
        resp.raise_for_status()
        tokens = resp.json()
        if not tokens.get("access_token"):
            raise APIError(400, "OAUTH_FAILED", tokens.get("error_description") or "No access token returned")
        return tokens

    def _fetch_profile(self, provider: str, conf: Dict[str, Any], access_token: str) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {access_token}", "Accept": "application/json"}
        resp = requests.get(conf["userinfo_url"], headers=headers, timeout=REQUEST_TIMEOUT)
        resp.raise_for_status()
        info = resp.json()

        if provider == "google":
            return {
                "id": str(info.get("sub")),
                "email": (info.get("email") or "").lower(),
                "email_verified": bool(info.get("email_verified")),
                "name": info.get("name") or info.get("email"),
                "image": info.get("picture"),
            }

        email = info.get("email")
        verified = False
        emails_resp = requests.get(conf["emails_url"], headers=headers, timeout=REQUEST_TIMEOUT)
        if emails_resp.ok:
            emails = emails_resp.json() or []
            primary = next((e for e in emails if e.get("primary")), None) or (emails[0] if emails else None)
            if primary:
                email = email or primary.get("email")
                verified = any(e.get("email") == email and e.get("verified") for e in emails)
        return {
            "id": str(info.get("id")),
            "email": (email or "").lower(),
            "email_verified": verified,
            "name": info.get("name") or info.get("login"),
            "image": info.get("avatar_url"),
        }

    # ------------------------------------------------------------------
    # Callback
    # ------------------------------------------------------------------

    def handle_callback(self, provider: str, code: str, state: str,
                        ip_address: Optional[str] = None, user_agent: Optional[str] = None) -> Dict[str, Any]:
        conf = self._provider(provider)

        with self.db_manager.session_context() as db:
            record = find_verification(db, f"{STATE_PREFIX}{state}")
            if record is None:
                raise APIError(400, "INVALID_STATE")
            state_data = load_json(record)
            delete_verification(db, f"{STATE_PREFIX}{state}")
        if state_data.get("provider") != provider:
            raise APIError(400, "INVALID_STATE")

        try:
            tokens = self._exchange_code(provider, conf, code)
            profile = self._fetch_profile(provider, conf, tokens["access_token"])
        except requests.RequestException as e:
            logger.error(f"❌ OAuth exchange with {provider} failed: {e}")
            raise APIError(400, "OAUTH_FAILED")

        if not profile.get("email"):
            raise APIError(400, "OAUTH_FAILED", "Provider did not return an email address")

        created_user = None
        with self.db_manager.session_context() as db:
            account = (
                db.query(AccountModel)
                .filter(AccountModel.provider_id == provider, AccountModel.account_id == profile["id"])
                .first()
            )
            link_user_id = state_data.get("link_user_id")

            if link_user_id:
                user = db.get(UserModel, link_user_id)
                if user is None:
                    raise APIError(404, "USER_NOT_FOUND")
                if not self.linking.get("allow_different_emails", False) and user.email != profile["email"]:
                    raise APIError(400, "EMAIL_DOES_NOT_MATCH")
                if account is not None and account.user_id != user.id:
                    raise APIError(400, "ACCOUNT_NOT_LINKED", "This account is already linked to another user")
                if account is None:
                    self._attach_account(db, user, provider, profile, tokens)
                else:
                    self._refresh_tokens(account, tokens)
                logger.info(f"🔗 Linked {provider} to {user.email}")
                callback_url = self.redirect_target(state_data.get("callback_url"))
                return {"linked": True, "url": callback_url, "user": user.to_dict()}

            if account is not None:
                user = account.user
                self._refresh_tokens(account, tokens)
            else:
                user = db.query(UserModel).filter(UserModel.email == profile["email"]).first()
                if user is not None:
                    trusted = provider in (self.linking.get("trusted_providers") or [])
                    if not self.linking.get("enabled", True) or not (trusted or profile["email_verified"]):
                        raise APIError(400, "ACCOUNT_NOT_LINKED")
                    self._attach_account(db, user, provider, profile, tokens)
                    if profile["email_verified"] and not user.email_verified:
                        user.email_verified = True
                else:
                    user = UserModel(
                        name=profile["name"] or profile["email"],
                        email=profile["email"],
                        email_verified=profile["email_verified"],
                        image=profile.get("image"),
                        role=self.default_role,
                    )
                    db.add(user)
                    db.flush()
                    self._attach_account(db, user, provider, profile, tokens)
                    created_user = user

            session = complete_sign_in(db, user, provider, ip_address, user_agent)
            result = session_payload(session, user, url=self.redirect_target(state_data.get("callback_url")))

        if created_user is not None:
            email_service.send_welcome_email(created_user)
        notify_new_login(user, ip_address, user_agent)
        return result

    @staticmethod
    def _refresh_tokens(account: AccountModel, tokens: Dict[str, Any]):
        account.access_token = tokens.get("access_token")
        account.refresh_token = tokens.get("refresh_token") or account.refresh_token
        account.id_token = tokens.get("id_token") or account.id_token
        if tokens.get("expires_in"):
            account.access_token_expires_at = expires_in(int(tokens["expires_in"]))
        account.updated_at = now_utc()

    def _attach_account(self, db, user: UserModel, provider: str, profile: Dict[str, Any], tokens: Dict[str, Any]):
        account = AccountModel(
            account_id=profile["id"],
            provider_id=provider,
            user_id=user.id,
            scope=tokens.get("scope"),
        )
        self._refresh_tokens(account, tokens)
        db.add(account)
        db.flush()
        return account
