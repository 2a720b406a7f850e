from datetime import timedelta

import jwt
import pytest

from src.auth.errors import APIError
from src.auth.security import SecurityService
from src.utils.helpers import parse_user_agent, split_roles, is_trusted_url

CHROME_MAC = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
SAFARI_IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)


def test_password_hashing():
    hashed = SecurityService.hash_password("password123")
    assert hashed != "password123"
    assert SecurityService.verify_password("password123", hashed)
    assert not SecurityService.verify_password("wrong-password", hashed)
    assert not SecurityService.verify_password("password123", None)


def test_session_tokens_are_unique():
    tokens = {SecurityService.generate_session_token() for _ in range(20)}
    assert len(tokens) == 20


def test_email_verification_token_roundtrip():
    token = SecurityService.create_email_verification_token("Alice@Example.com", update_to="New@Example.com")
    payload = SecurityService.decode_token(token, expected_type="email-verification")
    assert payload["email"] == "alice@example.com"
    assert payload["update_to"] == "new@example.com"


def test_token_type_and_expiry_are_enforced():
    token = SecurityService.create_token({"type": "admin-session"})
    with pytest.raises(jwt.InvalidTokenError):
        SecurityService.decode_token(token, expected_type="email-verification")
    assert SecurityService.verify_token(token, "email-verification") is None

    expired = SecurityService.create_token({"type": "admin-session"}, timedelta(seconds=-5))
    with pytest.raises(jwt.ExpiredSignatureError):
        SecurityService.decode_token(expired)
    assert SecurityService.verify_token(expired) is None


def test_parse_user_agent():
    desktop = parse_user_agent(CHROME_MAC, "10.0.0.1")
    assert desktop["browser"] == "Chrome"
    assert desktop["os"] == "Mac OS X"
    assert desktop["device_type"] == "desktop"
    assert desktop["location"] == "Unknown"
    assert desktop["ip_address"] == "10.0.0.1"

    mobile = parse_user_agent(SAFARI_IPHONE)
    assert mobile["device_type"] == "mobile"
    assert mobile["ip_address"] == "Unknown"

    unknown = parse_user_agent(None)
    assert unknown["browser"] == "Unknown Browser"


def test_split_roles():
    assert split_roles("admin, editor,") == ["admin", "editor"]
    assert split_roles(None) == []


def test_api_error_messages():
    assert APIError(404, "ROLE_NOT_FOUND").message == "Role not found."
    assert APIError(401, "INVALID_EMAIL_OR_PASSWORD").message == "Invalid email or password"
    assert APIError(400, "CUSTOM", "Custom message").to_dict() == {
        "code": "CUSTOM", "message": "Custom message", "status_code": 400,
    }


def test_is_trusted_url():
    origins = ["http://localhost:3000", "https://app.example.com"]
    for url in (None, "", "/dashboard", "/login?next=/x", "http://localhost:3000/home", "HTTPS://App.Example.com"):
        assert is_trusted_url(url, origins), url
    for url in ("https://evil.example/x", "//evil.example", "/\\evil.example", "javascript:alert(1)",
                "http://localhost:3001/home", "https://app.example.com.evil.example/", "dashboard"):
        assert not is_trusted_url(url, origins), url
