from datetime import timedelta

import pytest

from conftest import make_user, token_from_url, DEFAULT_PASSWORD
from src.auth.errors import APIError
from src.auth.service import AuthService
from src.auth.security import SecurityService
from src.database.models import UserModel, SessionModel, AccountModel, VerificationModel
from src.utils.time import now_utc


@pytest.fixture
def auth(db_manager, outbox):
    return AuthService(db_manager)


def _sign_up(auth, email="new@example.com", password=DEFAULT_PASSWORD):
    return auth.sign_up_email("New User", email, password, callback_url="http://localhost:3000/welcome")


def test_sign_up_requires_verification(auth, outbox, db_manager):
    result = _sign_up(auth)
    assert result["token"] is None
    assert result["user"]["email_verified"] is False
    assert result["user"]["role"] == "user"

    verify = outbox.last("verify")
    assert verify["to"] == "new@example.com"
    assert "callbackURL=" in verify["url"]
    assert outbox.of_kind("welcome")

    with db_manager.session_context() as db:
        account = db.query(AccountModel).filter(AccountModel.provider_id == "credential").one()
        assert account.account_id == result["user"]["id"]
        assert account.password != DEFAULT_PASSWORD


def test_sign_up_rejects_duplicates_and_short_passwords(auth):
    _sign_up(auth)
    with pytest.raises(APIError) as exc:
        _sign_up(auth, email="NEW@example.com")
    assert exc.value.status_code == 422
    assert exc.value.code == "USER_ALREADY_EXISTS"

    with pytest.raises(APIError) as exc:
        _sign_up(auth, email="other@example.com", password="short")
    assert exc.value.code == "PASSWORD_TOO_SHORT"


def test_sign_up_without_verification_signs_in(db_manager, outbox):
    auth = AuthService(db_manager, auth_config={"require_email_verification": False,
                                                "send_verification_on_sign_up": False})
    result = auth.sign_up_email("Eve", "eve@example.com", DEFAULT_PASSWORD)
    assert result["token"]
    assert result["user"]["last_login_method"] == "email"
    assert not outbox.of_kind("verify")


def test_verify_email_signs_in(auth, outbox):
    _sign_up(auth)
    token = token_from_url(outbox.last("verify")["url"])

    result = auth.verify_email(token, "127.0.0.1", "pytest")
    assert result["status"] is True
    assert result["token"]
    assert result["user"]["email_verified"] is True
    assert outbox.of_kind("new_login")

    # a second click is harmless
    again = auth.verify_email(token)
    assert again["token"] is None

    with pytest.raises(APIError) as exc:
        auth.verify_email("garbage")
    assert exc.value.code == "INVALID_TOKEN"


def test_send_verification_email(auth, outbox, db_manager):
    assert auth.send_verification_email("nobody@example.com") == {"status": True}
    assert not outbox.of_kind("verify")

    _sign_up(auth)
    auth.send_verification_email("new@example.com")
    assert len(outbox.of_kind("verify")) == 2

    make_user(db_manager, email="done@example.com")
    with pytest.raises(APIError) as exc:
        auth.send_verification_email("done@example.com")
    assert exc.value.code == "EMAIL_ALREADY_VERIFIED"


def test_sign_in(auth, db_manager, outbox):
    make_user(db_manager)
    result = auth.sign_in_email("Alice@Example.com", DEFAULT_PASSWORD, ip_address="10.0.0.1", user_agent="pytest")
    assert result["token"]
    assert result["session"]["ip_address"] == "10.0.0.1"
    assert result["user"]["last_login_method"] == "email"
    assert outbox.last("new_login")["to"] == "alice@example.com"

    for email, password in [("alice@example.com", "wrong-password"), ("ghost@example.com", DEFAULT_PASSWORD)]:
        with pytest.raises(APIError) as exc:
            auth.sign_in_email(email, password)
        assert exc.value.status_code == 401
        assert exc.value.code == "INVALID_EMAIL_OR_PASSWORD"


def test_sign_in_unverified_resends_verification(auth, db_manager, outbox):
    make_user(db_manager, verified=False)
    with pytest.raises(APIError) as exc:
        auth.sign_in_email("alice@example.com", DEFAULT_PASSWORD)
    assert exc.value.status_code == 403
    assert exc.value.code == "EMAIL_NOT_VERIFIED"
    assert outbox.last("verify")["to"] == "alice@example.com"


def test_remember_me_shortens_session(auth, db_manager):
    make_user(db_manager)
    long_lived = auth.sign_in_email("alice@example.com", DEFAULT_PASSWORD)
    short_lived = auth.sign_in_email("alice@example.com", DEFAULT_PASSWORD, remember_me=False)
    assert short_lived["remember_me"] is False
    assert short_lived["session"]["expires_at"] < long_lived["session"]["expires_at"]


def test_session_without_remember_me_is_not_extended(auth, db_manager):
    make_user(db_manager)
    short_lived = auth.sign_in_email("alice@example.com", DEFAULT_PASSWORD, remember_me=False)
    before = short_lived["session"]["expires_at"]
    assert short_lived["session"]["remember_me"] is False

    assert auth.get_session(short_lived["token"])["session"]["expires_at"] == before
    with db_manager.session_context() as db:
        assert db.query(SessionModel).filter(SessionModel.token == short_lived["token"]).one().remember_me is False


def test_remembered_session_is_extended_after_update_age(auth, db_manager):
    make_user(db_manager)
    result = auth.sign_in_email("alice@example.com", DEFAULT_PASSWORD)
    # two days into a seven day session
    with db_manager.session_context() as db:
        session = db.query(SessionModel).filter(SessionModel.token == result["token"]).one()
        session.expires_at = now_utc() + timedelta(days=5)

    refreshed = auth.get_session(result["token"])["session"]["expires_at"]
    assert refreshed > (now_utc() + timedelta(days=6)).isoformat()


def test_sessions(auth, db_manager):
    user = make_user(db_manager)
    first = auth.sign_in_email(user["email"], DEFAULT_PASSWORD, user_agent="Mozilla/5.0 (Windows NT 10.0)")
    second = auth.sign_in_email(user["email"], DEFAULT_PASSWORD)

    sessions = auth.list_sessions(user["id"], first["token"])
    assert len(sessions) == 2
    current = [s for s in sessions if s["current"]]
    assert current[0]["token"] == first["token"]
    assert current[0]["device"]["os"] == "Windows"

    auth.revoke_other_sessions(user["id"], first["token"])
    assert auth.get_session(second["token"]) is None
    assert auth.get_session(first["token"])["user"]["id"] == user["id"]

    auth.sign_out(first["token"])
    assert auth.get_session(first["token"]) is None


def test_listing_sessions_changes_nothing(auth, db_manager):
    user = make_user(db_manager)
    short_lived = auth.sign_in_email(user["email"], DEFAULT_PASSWORD, remember_me=False)
    remembered = auth.sign_in_email(user["email"], DEFAULT_PASSWORD)
    with db_manager.session_context() as db:
        session = db.query(SessionModel).filter(SessionModel.token == remembered["token"]).one()
        session.expires_at = now_utc() + timedelta(days=5)
        stale_expiry = session.expires_at
        expired = SessionModel(token="expired-token", user_id=user["id"], expires_at=now_utc() - timedelta(seconds=1))
        db.add(expired)

    listed = {s["token"]: s for s in auth.list_sessions(user["id"])}
    assert set(listed) == {short_lived["token"], remembered["token"]}
    assert listed[short_lived["token"]]["expires_at"] == short_lived["session"]["expires_at"]

    with db_manager.session_context() as db:
        assert db.query(SessionModel).count() == 3
        kept = db.query(SessionModel).filter(SessionModel.token == remembered["token"]).one()
        assert kept.expires_at.replace(tzinfo=None) == stale_expiry.replace(tzinfo=None)


def test_expired_sessions_are_dropped(auth, db_manager):
    user = make_user(db_manager)
    result = auth.sign_in_email(user["email"], DEFAULT_PASSWORD)
    with db_manager.session_context() as db:
        session = db.query(SessionModel).filter(SessionModel.token == result["token"]).one()
        session.expires_at = now_utc() - timedelta(seconds=1)

    assert auth.get_session(result["token"]) is None
    with db_manager.session_context() as db:
        assert db.query(SessionModel).count() == 0


def test_password_reset(auth, db_manager, outbox):
    user = make_user(db_manager)
    session = auth.sign_in_email(user["email"], DEFAULT_PASSWORD)

    result = auth.request_password_reset(user["email"])
    assert result["status"] is True
    url = outbox.last("reset")["url"]
    assert url.startswith("http://localhost:3000/reset-password?token=")

    unknown = auth.request_password_reset("ghost@example.com")
    assert unknown["message"] == result["message"]

    auth.reset_password(token_from_url(url), "brand-new-password")
    assert outbox.last("password_changed")["to"] == user["email"]
    assert auth.get_session(session["token"]) is None
    assert auth.sign_in_email(user["email"], "brand-new-password")["token"]

    with pytest.raises(APIError) as exc:
        auth.reset_password(token_from_url(url), "another-password")
    assert exc.value.code == "INVALID_TOKEN"


def test_expired_reset_token_is_removed(auth, db_manager, outbox):
    user = make_user(db_manager)
    auth.request_password_reset(user["email"])
    token = token_from_url(outbox.last("reset")["url"])
    with db_manager.session_context() as db:
        db.query(VerificationModel).update({"expires_at": now_utc() - timedelta(seconds=1)})

    with pytest.raises(APIError) as exc:
        auth.reset_password(token, "brand-new-password")
    assert exc.value.code == "INVALID_TOKEN"
    with db_manager.session_context() as db:
        assert db.query(VerificationModel).count() == 0


def test_change_password(auth, db_manager):
    user = make_user(db_manager)
    keep = auth.sign_in_email(user["email"], DEFAULT_PASSWORD)
    other = auth.sign_in_email(user["email"], DEFAULT_PASSWORD)

    with pytest.raises(APIError) as exc:
        auth.change_password(user["id"], "not-my-password", "new-password-1")
    assert exc.value.code == "INVALID_PASSWORD"

    result = auth.change_password(user["id"], DEFAULT_PASSWORD, "new-password-1",
                                  revoke_other_sessions=True, current_token=keep["token"])
    assert result["token"] == keep["token"]
    assert auth.get_session(other["token"]) is None
    assert auth.get_session(keep["token"]) is not None


def test_set_password_only_once(auth, db_manager):
    with db_manager.session_context() as db:
        db.add(UserModel(name="Social", email="social@example.com", email_verified=True))
    with db_manager.session_context() as db:
        user_id = db.query(UserModel).filter(UserModel.email == "social@example.com").one().id

    assert auth.set_password(user_id, "first-password") == {"status": True}
    with pytest.raises(APIError) as exc:
        auth.set_password(user_id, "second-password")
    assert exc.value.code == "PASSWORD_ALREADY_SET"


def test_update_user_only_touches_profile_fields(auth, db_manager):
    user = make_user(db_manager)
    result = auth.update_user(user["id"], {"name": "Alice B", "company": "Nog", "role": "admin",
                                           "email": "evil@example.com"})
    assert result["user"]["name"] == "Alice B"
    assert result["user"]["company"] == "Nog"
    assert result["user"]["role"] == "user"
    assert result["user"]["email"] == "alice@example.com"


def test_change_email_of_verified_user(auth, db_manager, outbox):
    user = make_user(db_manager)
    assert auth.change_email(user["id"], "alice.new@example.com") == {"status": True}
    sent = outbox.last("change_email")
    assert sent["to"] == "alice.new@example.com"

    result = auth.verify_email(token_from_url(sent["url"]))
    assert result["user"]["email"] == "alice.new@example.com"
    assert result["user"]["email_verified"] is True

    with pytest.raises(APIError) as exc:
        auth.change_email(user["id"], "alice.new@example.com")
    assert exc.value.code == "INVALID_EMAIL"


def test_change_email_of_unverified_user_is_immediate(auth, db_manager):
    user = make_user(db_manager, verified=False)
    result = auth.change_email(user["id"], "fixed@example.com")
    assert result["user"]["email"] == "fixed@example.com"

    make_user(db_manager, email="taken@example.com", name="Taken")
    with pytest.raises(APIError) as exc:
        auth.change_email(user["id"], "taken@example.com")
    assert exc.value.code == "USER_ALREADY_EXISTS"


def test_delete_user(auth, db_manager):
    user = make_user(db_manager)
    auth.sign_in_email(user["email"], DEFAULT_PASSWORD)

    with pytest.raises(APIError) as exc:
        auth.delete_user(user["id"], "wrong-password")
    assert exc.value.code == "INVALID_PASSWORD"

    assert auth.delete_user(user["id"], DEFAULT_PASSWORD)["success"] is True
    with db_manager.session_context() as db:
        assert db.query(UserModel).count() == 0
        assert db.query(SessionModel).count() == 0
        assert db.query(AccountModel).count() == 0


def test_accounts_and_unlink(auth, db_manager):
    user = make_user(db_manager)
    accounts = auth.list_accounts(user["id"])
    assert [a["provider_id"] for a in accounts] == ["credential"]

    with pytest.raises(APIError) as exc:
        auth.unlink_account(user["id"], "credential")
    assert exc.value.code == "FAILED_TO_UNLINK_LAST_ACCOUNT"

    with db_manager.session_context() as db:
        db.add(AccountModel(account_id="gh-1", provider_id="github", user_id=user["id"]))

    with pytest.raises(APIError) as exc:
        auth.unlink_account(user["id"], "google")
    assert exc.value.code == "ACCOUNT_NOT_FOUND"

    assert auth.unlink_account(user["id"], "github") == {"status": True}
    assert len(auth.list_accounts(user["id"])) == 1


def test_verification_token_for_unknown_user(auth):
    token = SecurityService.create_email_verification_token("ghost@example.com")
    with pytest.raises(APIError) as exc:
        auth.verify_email(token)
    assert exc.value.code == "USER_NOT_FOUND"
