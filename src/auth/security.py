"""
Security & JWT
==============

Password hashing, opaque session tokens and signed JWTs for email
verification and impersonation.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
import secrets
import jwt
import logging
from passlib.context import CryptContext
from src.utils import ConfigLoader

logger = logging.getLogger(__name__)

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
fallback_context = CryptContext(schemes=["sha256_crypt"], deprecated="auto")

cfg = ConfigLoader()
sec = cfg.get_security_config()
SECRET_KEY = sec.get("secret_key") or "dev-secret-key-change-in-production-12345"
ALGORITHM = "HS256"
EMAIL_VERIFICATION_EXPIRE_SECONDS = int(sec.get("email_verification_expire_seconds", 3600))


class SecurityService:
    """Security primitives shared by the auth services"""

    @staticmethod
    def hash_password(password: str) -> str:
        """Hash password with bcrypt"""
        try:
            return pwd_context.hash(password)
        except Exception:
            # bcrypt backend missing or incompatible in this environment
            return fallback_context.hash(password)

    @staticmethod
    def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
        if not hashed_password:
            return False
        try:
            return pwd_context.verify(plain_password, hashed_password)
        except Exception:
            try:
                return fallback_context.verify(plain_password, hashed_password)
            except Exception:
                return False

    @staticmethod
    def generate_session_token() -> str:
        return secrets.token_urlsafe(32)

    @staticmethod
    def create_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
        """
        Create a signed JWT

        Args:
            data: Payload data (should carry a `type`)
            expires_delta: Lifetime, defaults to the email verification lifetime

        Returns:
            JWT token string
        """
        to_encode = data.copy()
        expires_delta = expires_delta or timedelta(seconds=EMAIL_VERIFICATION_EXPIRE_SECONDS)
        to_encode.update({
            "exp": datetime.now(timezone.utc) + expires_delta,
            "iat": datetime.now(timezone.utc),
        })
        return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

    @staticmethod
    def decode_token(token: str, expected_type: Optional[str] = None) -> Dict[str, Any]:
        """
        Decode a JWT, raising on failure

        Raises:
            jwt.ExpiredSignatureError: token lifetime elapsed
            jwt.InvalidTokenError: bad signature, malformed or wrong type
        """
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        if expected_type and payload.get("type") != expected_type:
            raise jwt.InvalidTokenError(f"expected token type {expected_type}")
        return payload

    @staticmethod
    def verify_token(token: str, expected_type: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Decode a JWT, returning None when it is expired or invalid"""
        try:
            return SecurityService.decode_token(token, expected_type)
        except jwt.ExpiredSignatureError:
            logger.warning("Token has expired")
            return None
        except jwt.InvalidTokenError as e:
            logger.warning(f"Invalid token: {str(e)}")
            return None

    @staticmethod
    def create_email_verification_token(email: str, update_to: Optional[str] = None) -> str:
        data = {"email": email.lower(), "type": "email-verification"}
        if update_to:
            data["update_to"] = update_to.lower()
        return SecurityService.create_token(data)
