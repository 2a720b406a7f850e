import pytest

from conftest import make_user, sign_in, bearer
from src.auth.errors import APIError
from src.auth.passkey import PasskeyService
from src.database.models import PasskeyModel, SessionModel

PASSKEY = "/api/v1/auth/passkey"


def _add_passkey(db_manager, user_id, credential_id="Y3JlZC0x", name="Laptop"):
    with db_manager.session_context() as db:
        passkey = PasskeyModel(
            name=name,
            user_id=user_id,
            credential_id=credential_id,
            public_key="cHVibGljLWtleQ",
            counter=0,
            device_type="multi_device",
            transports="internal,hybrid",
        )
        db.add(passkey)
        db.flush()
        return passkey.id


def test_registration_options(db_manager, user):
    _add_passkey(db_manager, user["id"])
    result = PasskeyService(db_manager).generate_registration_options(user["id"])

    options = result["options"]
    assert result["challenge_id"]
    assert options["rp"]["id"] == "localhost"
    assert options["user"]["name"] == user["email"]
    assert [c["id"] for c in options["excludeCredentials"]] == ["Y3JlZC0x"]


def test_registration_rejects_bad_challenge_and_response(db_manager, user):
    service = PasskeyService(db_manager)
    with pytest.raises(APIError) as exc:
        service.verify_registration(user["id"], {"id": "x"}, "no-such-challenge")
    assert exc.value.code == "CHALLENGE_NOT_FOUND"

    other = make_user(db_manager, email="other@example.com", name="Other")
    challenge_id = service.generate_registration_options(other["id"])["challenge_id"]
    with pytest.raises(APIError) as exc:
        service.verify_registration(user["id"], {"id": "x"}, challenge_id)
    assert exc.value.code == "CHALLENGE_NOT_FOUND"

    challenge_id = service.generate_registration_options(user["id"])["challenge_id"]
    with pytest.raises(APIError) as exc:
        service.verify_registration(user["id"], {"id": "x", "rawId": "x", "response": {}, "type": "public-key"},
                                    challenge_id)
    assert exc.value.code == "FAILED_TO_VERIFY_REGISTRATION"


def test_authentication_options_and_unknown_credential(db_manager, user):
    _add_passkey(db_manager, user["id"])
    service = PasskeyService(db_manager)

    scoped = service.generate_authentication_options(user["id"])
    assert [c["id"] for c in scoped["options"]["allowCredentials"]] == ["Y3JlZC0x"]

    anonymous = service.generate_authentication_options()
    assert anonymous["options"].get("allowCredentials", []) == []

    with pytest.raises(APIError) as exc:
        service.verify_authentication({"id": "unknown-credential"}, anonymous["challenge_id"])
    assert exc.value.code == "PASSKEY_NOT_FOUND"

    # the challenge was consumed by the failed attempt
    with pytest.raises(APIError) as exc:
        service.verify_authentication({"id": "Y3JlZC0x"}, anonymous["challenge_id"])
    assert exc.value.code == "CHALLENGE_NOT_FOUND"


def test_scoped_challenge_refuses_other_users_passkeys(db_manager, user):
    other = make_user(db_manager, email="other@example.com", name="Other")
    _add_passkey(db_manager, other["id"], credential_id="b3RoZXI")
    service = PasskeyService(db_manager)

    scoped = service.generate_authentication_options(user["id"])
    with pytest.raises(APIError) as exc:
        service.verify_authentication({"id": "b3RoZXI"}, scoped["challenge_id"])
    assert exc.value.status_code == 401
    assert exc.value.code == "PASSKEY_NOT_FOUND"

    with db_manager.session_context() as db:
        assert db.query(SessionModel).filter(SessionModel.user_id == other["id"]).count() == 0


def test_passkey_management(db_manager, user):
    passkey_id = _add_passkey(db_manager, user["id"])
    service = PasskeyService(db_manager)

    listed = service.list_user_passkeys(user["id"])
    assert listed[0]["name"] == "Laptop"
    assert listed[0]["transports"] == ["internal", "hybrid"]

    assert service.update_passkey(user["id"], passkey_id, "Work laptop")["passkey"]["name"] == "Work laptop"

    other = make_user(db_manager, email="other@example.com", name="Other")
    with pytest.raises(APIError) as exc:
        service.delete_passkey(other["id"], passkey_id)
    assert exc.value.code == "PASSKEY_NOT_FOUND"

    assert service.delete_passkey(user["id"], passkey_id) == {"status": True}
    assert service.list_user_passkeys(user["id"]) == []


def test_passkey_http_flow(client, db_manager, user):
    headers = bearer(sign_in(client, user["email"]))

    resp = client.get(f"{PASSKEY}/generate-register-options", headers=headers)
    assert resp.status_code == 200
    assert resp.cookies.get("passkey_challenge") == resp.json()["challenge_id"]

    resp = client.post(f"{PASSKEY}/verify-registration", json={"response": {"id": "x"}}, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["code"] == "FAILED_TO_VERIFY_REGISTRATION"

    passkey_id = _add_passkey(db_manager, user["id"])
    listed = client.get(f"{PASSKEY}/list-user-passkeys", headers=headers).json()
    assert [p["id"] for p in listed] == [passkey_id]

    resp = client.post(f"{PASSKEY}/update-passkey", json={"id": passkey_id, "name": "Phone"}, headers=headers)
    assert resp.json()["passkey"]["name"] == "Phone"

    resp = client.post(f"{PASSKEY}/delete-passkey", json={"id": passkey_id}, headers=headers)
    assert resp.json() == {"status": True}

    client.cookies.clear()
    resp = client.get(f"{PASSKEY}/generate-authenticate-options")
    assert resp.status_code == 200
    assert resp.json()["options"].get("allowCredentials", []) == []
