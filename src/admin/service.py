"""
Admin Service
=============

User management for administrators: listing with search/filter/sort,
creation, roles, bans, impersonation, sessions, passwords, profile edits,
avatars and console statistics.

Callers are expected to have passed the admin-role check; operations that
depend on who is acting take the actor's id or email explicitly.
"""

import json
import logging
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, List, Union

from sqlalchemy import Boolean, DateTime, func

from src.admin.avatars import AvatarStore
from src.auth.errors import APIError
from src.auth.models import PROFILE_FIELDS
from src.auth.security import SecurityService
from src.auth.service import normalize_email, check_password_length, get_credential_account, upsert_credential_account
from src.auth.sessions import create_session, resolve_session, session_payload
from src.database.models import UserModel, SessionModel, Role, Permission
from src.database.query import apply_search, apply_filter, apply_sort
from src.rbac.options import PaginationOptions
from src.rbac.validation import resolve_pagination
from src.utils.config_loader import ConfigLoader
from src.utils.helpers import parse_user_agent
from src.utils.time import now_utc, is_expired

logger = logging.getLogger(__name__)

ADMIN_SESSION_TOKEN_TYPE = "admin-session"
USER_PAGINATION = PaginationOptions(default_limit=100, max_limit=1000, default_offset=0)

USER_SEARCH_FIELDS = ("email", "name")
USER_FILTER_FIELDS = (
    "id", "name", "email", "email_verified", "role", "banned", "two_factor_enabled",
    "last_login_method", "created_at", "updated_at", "job_title", "company", "department", "location",
)
USER_SORT_FIELDS = USER_FILTER_FIELDS


def join_roles(role: Union[str, List[str], None]) -> Optional[str]:
    if role is None:
        return None
    if isinstance(role, (list, tuple)):
        return ",".join(r.strip() for r in role if r and r.strip())
    return role.strip()


def _coerce(column, value: Any) -> Any:
    """Match a filter value to the column type"""
    if isinstance(value, list):
        return [_coerce(column, v) for v in value]
    if isinstance(column.type, Boolean) and isinstance(value, str):
        return value.lower() == "true"
    if isinstance(column.type, DateTime) and isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise APIError(400, "INVALID_FILTERS", f"Invalid date: {value}")
    return value


def parse_filters(raw: Optional[str]) -> List[Dict[str, Any]]:
    """
    Parse the `filters` query parameter of the advanced user listing

    `in` values may be a JSON array or a comma-separated string. An `in`
    filter over booleans that holds both true and false matches everything
    and is dropped. Plain "true"/"false" values become booleans.
    """
    if not raw:
        return []
    try:
        filters = json.loads(raw)
    except ValueError:
        raise APIError(400, "INVALID_FILTERS")
    if not isinstance(filters, list):
        raise APIError(400, "INVALID_FILTERS")

    parsed = []
    for item in filters:
        if not isinstance(item, dict) or not item.get("field"):
            raise APIError(400, "INVALID_FILTERS")
        operator = item.get("operator") or "eq"
        value = item.get("value")

        if operator == "in":
            if isinstance(value, str):
                if value.startswith("["):
                    try:
                        value = json.loads(value)
                    except ValueError:
                        value = [v.strip() for v in value.split(",")]
                else:
                    value = [v.strip() for v in value.split(",")]
            if not isinstance(value, list):
                raise APIError(400, "INVALID_FILTERS")
            booleans = [v in (True, "true") for v in value if isinstance(v, bool) or v in ("true", "false")]
            if value and len(booleans) == len(value):
                if True in booleans and False in booleans:
                    continue
                value = booleans
        elif value == "true":
            value = True
        elif value == "false":
            value = False

        if value is not None:
            parsed.append({"field": item["field"], "operator": operator, "value": value})
    return parsed


class AdminService:
    """Administrative user management"""

    def __init__(self, db_manager, auth_config: Optional[Dict[str, Any]] = None,
                 avatar_store: Optional[AvatarStore] = None):
        self.db_manager = db_manager
        self.config = auth_config if auth_config is not None else ConfigLoader().get_auth_config()
        self.avatars = avatar_store or AvatarStore()
        self.min_password_length = int(self.config.get("min_password_length", 8))
        self.max_password_length = int(self.config.get("max_password_length", 128))
        self.default_role = self.config.get("default_role", "user")
        self.impersonation_duration = int(self.config.get("impersonation_session_duration", 3600))

    @staticmethod
    def _get_user(db, user_id: str) -> UserModel:
        user = db.get(UserModel, user_id) if user_id else None
        if user is None:
            raise APIError(404, "USER_NOT_FOUND")
        return user

    def _check_password(self, password: str):
        check_password_length(password, self.min_password_length, self.max_password_length)

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def _list(self, filters: List[Dict[str, Any]], search_value, search_field, search_operator,
              limit, offset, sort_by, sort_direction) -> Dict[str, Any]:
        limit, offset = resolve_pagination(limit, offset, USER_PAGINATION)
        with self.db_manager.session_context() as db:
            query = db.query(UserModel)
            field = search_field if search_field in USER_SEARCH_FIELDS else "email"
            query = apply_search(query, getattr(UserModel, field), search_operator, search_value)
            for item in filters:
                if item["field"] not in USER_FILTER_FIELDS:
                    raise APIError(400, "INVALID_FILTERS", f"Unknown filter field: {item['field']}")
                column = getattr(UserModel, item["field"])
                query = apply_filter(query, column, item["operator"], _coerce(column, item["value"]))
            total = query.count()
            query = apply_sort(query, UserModel, sort_by, sort_direction, USER_SORT_FIELDS, default="created_at")
            users = query.offset(offset).limit(limit).all()
            return {"users": [u.to_dict() for u in users], "total": total, "limit": limit, "offset": offset}

    def list_users(self, search_value: Optional[str] = None, search_field: Optional[str] = "email",
                   search_operator: Optional[str] = "contains", limit=None, offset=None,
                   sort_by: Optional[str] = None, sort_direction: Optional[str] = None,
                   filter_field: Optional[str] = None, filter_operator: Optional[str] = None,
                   filter_value: Any = None) -> Dict[str, Any]:
        filters = []
        if filter_field and filter_value is not None:
            if filter_value in ("true", "false"):
                filter_value = filter_value == "true"
            filters.append({"field": filter_field, "operator": filter_operator or "eq", "value": filter_value})
        return self._list(filters, search_value, search_field, search_operator, limit, offset, sort_by, sort_direction)

    def list_users_advanced(self, search_value: Optional[str] = None, search_field: Optional[str] = "email",
                            search_operator: Optional[str] = "contains", limit=None, offset=None,
                            sort_by: Optional[str] = None, sort_direction: Optional[str] = None,
                            filters: Optional[str] = None) -> Dict[str, Any]:
        return self._list(parse_filters(filters), search_value, search_field, search_operator,
                          limit, offset, sort_by, sort_direction)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, email: str, password: str, name: str,
                    role: Union[str, List[str], None] = None, data: Optional[Dict[str, Any]] = None,
                    actor_email: Optional[str] = None) -> Dict[str, Any]:
        email = normalize_email(email)
        self._check_password(password)
        with self.db_manager.session_context() as db:
            if db.query(UserModel).filter(UserModel.email == email).first():
                raise APIError(422, "USER_ALREADY_EXISTS")
            user = UserModel(
                name=name,
                email=email,
                role=join_roles(role) or self.default_role,
                created_by=actor_email,
                updated_by=actor_email,
            )
            for key, value in (data or {}).items():
                if key in PROFILE_FIELDS or key == "email_verified":
                    setattr(user, key, value)
            db.add(user)
            db.flush()
            upsert_credential_account(db, user, password)
            logger.info(f"✅ Admin {actor_email} created user {email}")
            return {"user": user.to_dict()}

    def set_role(self, user_id: str, role: Union[str, List[str]], actor_email: Optional[str] = None) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            user = self._get_user(db, user_id)
            user.role = join_roles(role)
            user.updated_by = actor_email
            db.flush()
            return {"user": user.to_dict()}

    def update_user(self, user_id: str, data: Dict[str, Any], actor_email: Optional[str] = None) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            user = self._get_user(db, user_id)
            for key, value in (data or {}).items():
                if key in PROFILE_FIELDS or key == "email_verified":
                    setattr(user, key, value)
                elif key == "email" and value:
                    email = normalize_email(value)
                    if db.query(UserModel).filter(UserModel.email == email, UserModel.id != user.id).first():
                        raise APIError(422, "USER_ALREADY_EXISTS")
                    user.email = email
                elif key == "role":
                    user.role = join_roles(value)
                elif key == "metadata":
                    user.user_metadata = value
            user.updated_by = actor_email
            db.flush()
            return {"user": user.to_dict()}

    def remove_user(self, actor_id: str, user_id: str) -> Dict[str, Any]:
        if actor_id == user_id:
            raise APIError(400, "YOU_CANNOT_REMOVE_YOURSELF")
        with self.db_manager.session_context() as db:
            user = self._get_user(db, user_id)
            image = user.image
            db.delete(user)
            logger.info(f"🗑️  Admin removed user {user.email}")
        self.avatars.delete(image)
        return {"success": True}

    # ------------------------------------------------------------------
    # Bans
    # ------------------------------------------------------------------

    def ban_user(self, actor_id: str, user_id: str, ban_reason: Optional[str] = None,
                 ban_expires_in: Optional[int] = None) -> Dict[str, Any]:
        if actor_id == user_id:
            raise APIError(400, "YOU_CANNOT_BAN_YOURSELF")
        with self.db_manager.session_context() as db:
            user = self._get_user(db, user_id)
            user.banned = True
            user.ban_reason = ban_reason or "No reason"
            user.ban_expires = now_utc() + timedelta(seconds=int(ban_expires_in)) if ban_expires_in else None
            db.query(SessionModel).filter(SessionModel.user_id == user.id).delete(synchronize_session=False)
            db.flush()
            logger.warning(f"⛔ User banned: {user.email} ({user.ban_reason})")
            return {"user": user.to_dict()}

    def unban_user(self, user_id: str) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            user = self._get_user(db, user_id)
            user.banned = False
            user.ban_reason = None
            user.ban_expires = None
            db.flush()
            return {"user": user.to_dict()}

    # ------------------------------------------------------------------
    # Impersonation
    # ------------------------------------------------------------------

    def impersonate_user(self, admin_id: str, admin_token: str, user_id: str,
                         ip_address: Optional[str] = None, user_agent: Optional[str] = None) -> Dict[str, Any]:
        """
        Start a short-lived session as another user

        The admin's own session token is carried in a signed `admin_session`
        value so it can be restored by stop_impersonating.
        """
        with self.db_manager.session_context() as db:
            user = self._get_user(db, user_id)
            session = create_session(
                db, user, ip_address, user_agent,
                expires_in=self.impersonation_duration,
                impersonated_by=admin_id,
            )
            payload = session_payload(session, user)

        payload["admin_session"] = SecurityService.create_token(
            {"type": ADMIN_SESSION_TOKEN_TYPE, "token": admin_token, "sub": admin_id},
            timedelta(seconds=self.impersonation_duration),
        )
        logger.info(f"🎭 Admin {admin_id} impersonating {user_id}")
        return payload

    def stop_impersonating(self, token: str, admin_session: Optional[str]) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            session = resolve_session(db, token)
            if session is None or not session.impersonated_by:
                raise APIError(400, "NOT_IMPERSONATING")

            claims = SecurityService.verify_token(admin_session, ADMIN_SESSION_TOKEN_TYPE) if admin_session else None
            if claims is None or claims.get("sub") != session.impersonated_by:
                raise APIError(400, "INVALID_TOKEN", "Admin session is missing or invalid")
            db.delete(session)

            admin = resolve_session(db, claims.get("token"))
            if admin is None:
                raise APIError(400, "SESSION_NOT_FOUND", "Admin session expired")
            return session_payload(admin, admin.user)

    # ------------------------------------------------------------------
    # Sessions & passwords
    # ------------------------------------------------------------------

    def list_user_sessions(self, user_id: str) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            self._get_user(db, user_id)
            sessions = (
                db.query(SessionModel)
                .filter(SessionModel.user_id == user_id)
                .order_by(SessionModel.created_at.desc())
                .all()
            )
            return {
                "sessions": [
                    {**s.to_dict(), "device": parse_user_agent(s.user_agent, s.ip_address)}
                    for s in sessions if not is_expired(s.expires_at)
                ]
            }

    def revoke_user_session(self, session_token: str) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            db.query(SessionModel).filter(SessionModel.token == session_token).delete(synchronize_session=False)
        return {"success": True}

    def revoke_user_sessions(self, user_id: str) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            db.query(SessionModel).filter(SessionModel.user_id == user_id).delete(synchronize_session=False)
        return {"success": True}

    def set_user_password(self, user_id: str, new_password: str) -> Dict[str, Any]:
        self._check_password(new_password)
        with self.db_manager.session_context() as db:
            user = self._get_user(db, user_id)
            upsert_credential_account(db, user, new_password)
        return {"status": True}

    def remove_password(self, user_id: str) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            user = self._get_user(db, user_id)
            account = get_credential_account(db, user.id)
            if account is not None:
                db.delete(account)
                logger.info(f"🔑 Credential removed for {user.email}")
        return {"success": True}

    def user_has_credential_account(self, user_id: str) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            user = self._get_user(db, user_id)
            return {"has_credential_account": get_credential_account(db, user.id) is not None}

    def set_credential_password(self, user_id: str, new_password: str) -> Dict[str, Any]:
        self._check_password(new_password)
        with self.db_manager.session_context() as db:
            user = self._get_user(db, user_id)
            upsert_credential_account(db, user, new_password)
            db.query(SessionModel).filter(SessionModel.user_id == user.id).delete(synchronize_session=False)
        return {"success": True}

    # ------------------------------------------------------------------
    # Avatars
    # ------------------------------------------------------------------

    def update_avatar(self, user_id: str, content: Optional[bytes], content_type: Optional[str]) -> Dict[str, Any]:
        """Store the new avatar; the old file is removed only once the user row is committed"""
        self.avatars.validate(content, content_type)
        stored = None
        try:
            with self.db_manager.session_context() as db:
                user = self._get_user(db, user_id)
                previous = user.image
                stored = self.avatars.save(content, content_type)
                user.image = stored["url"]
        except Exception:
            if stored is not None:
                self.avatars.delete(stored["url"])
            raise
        self.avatars.delete(previous)
        return stored

    def delete_avatar(self, user_id: str) -> Dict[str, Any]:
        with self.db_manager.session_context() as db:
            user = self._get_user(db, user_id)
            previous = user.image
            user.image = None
        self.avatars.delete(previous)
        return {"success": True}

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def stats(self) -> Dict[str, int]:
        with self.db_manager.session_context() as db:
            active = (
                db.query(func.count(func.distinct(SessionModel.user_id)))
                .filter(SessionModel.expires_at > now_utc())
                .scalar()
            )
            return {
                "total_users": db.query(func.count(UserModel.id)).scalar() or 0,
                "active_users": active or 0,
                "total_roles": db.query(func.count(Role.id)).scalar() or 0,
                "total_permissions": db.query(func.count(Permission.id)).scalar() or 0,
            }
