from conftest import make_user, sign_in, bearer, token_from_url, DEFAULT_PASSWORD

AUTH = "/api/v1/auth"


def test_health_endpoints(client):
    assert client.get("/health").json()["status"] == "healthy"
    assert client.get("/health/live").json()["status"] == "alive"
    assert client.get("/health/ready").json() == {"status": "ready", "database": "connected"}
    info = client.get("/info").json()
    assert info["version"]
    assert "Role-based access control" in info["features"]


def test_sign_up_validation(client):
    resp = client.post(f"{AUTH}/sign-up/email", json={
        "name": "Nia", "email": "nia@example.com", "password": DEFAULT_PASSWORD, "confirm_password": "different1",
    })
    assert resp.status_code == 422
    assert "Passwords do not match." in resp.json()["details"][0]["message"]

    resp = client.post(f"{AUTH}/sign-up/email", json={"name": "Nia", "email": "not-an-email",
                                                      "password": DEFAULT_PASSWORD})
    assert resp.status_code == 422


def test_sign_up_then_verify_with_redirect(client, outbox):
    resp = client.post(f"{AUTH}/sign-up/email", json={
        "name": "Nia", "email": "nia@example.com", "password": DEFAULT_PASSWORD,
        "confirm_password": DEFAULT_PASSWORD, "callbackURL": "http://localhost:3000/dashboard",
    })
    assert resp.status_code == 200, resp.text
    assert resp.json()["token"] is None
    assert "session_token" not in resp.cookies

    token = token_from_url(outbox.last("verify")["url"])
    resp = client.get(f"{AUTH}/verify-email",
                      params={"token": token, "callbackURL": "http://localhost:3000/dashboard"},
                      follow_redirects=False)
    assert resp.status_code == 302
    assert resp.headers["location"] == "http://localhost:3000/dashboard"
    assert resp.cookies.get("session_token")


def test_verify_email_errors(client):
    resp = client.get(f"{AUTH}/verify-email", params={"token": "bad", "callbackURL": "http://localhost:3000/done"},
                      follow_redirects=False)
    assert resp.status_code == 302
    assert resp.headers["location"] == "http://localhost:3000/done?error=INVALID_TOKEN"

    resp = client.get(f"{AUTH}/verify-email", params={"token": "bad"})
    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_TOKEN"


def test_redirect_targets_must_be_trusted(client, user, outbox):
    resp = client.get(f"{AUTH}/verify-email", params={"token": "bad", "callbackURL": "https://evil.example/x"},
                      follow_redirects=False)
    assert resp.status_code == 403
    assert resp.json()["code"] == "INVALID_CALLBACK_URL"
    assert "location" not in resp.headers

    resp = client.post(f"{AUTH}/sign-up/email", json={
        "name": "Nia", "email": "nia@example.com", "password": DEFAULT_PASSWORD,
        "callbackURL": "//evil.example/welcome",
    })
    assert resp.status_code == 403
    assert resp.json()["code"] == "INVALID_CALLBACK_URL"
    assert not outbox.of_kind("verify")

    resp = client.post(f"{AUTH}/request-password-reset",
                       json={"email": user["email"], "redirectTo": "https://evil.example/reset"})
    assert resp.status_code == 403
    assert resp.json()["code"] == "INVALID_REDIRECT_URL"
    assert not outbox.of_kind("reset")

    resp = client.get(f"{AUTH}/verify-email", params={"token": "bad", "callbackURL": "/done"},
                      follow_redirects=False)
    assert resp.status_code == 302
    assert resp.headers["location"] == "/done?error=INVALID_TOKEN"


def test_sign_in_sets_cookie_and_session(client, user):
    resp = client.post(f"{AUTH}/sign-in/email", json={"email": user["email"], "password": DEFAULT_PASSWORD},
                       headers={"User-Agent": "pytest-agent"})
    assert resp.status_code == 200
    token = resp.json()["token"]
    assert resp.cookies.get("session_token") == token

    # cookie is sent back automatically
    session = client.get(f"{AUTH}/get-session").json()
    assert session["user"]["email"] == user["email"]
    assert session["session"]["user_agent"] == "pytest-agent"

    resp = client.post(f"{AUTH}/sign-out")
    assert resp.json() == {"success": True}
    client.cookies.clear()
    assert client.get(f"{AUTH}/get-session", headers=bearer(token)).json() is None


def test_sign_in_failures(client, db_manager):
    make_user(db_manager, email="late@example.com", verified=False)
    resp = client.post(f"{AUTH}/sign-in/email", json={"email": "late@example.com", "password": DEFAULT_PASSWORD})
    assert resp.status_code == 403
    assert resp.json()["code"] == "EMAIL_NOT_VERIFIED"

    resp = client.post(f"{AUTH}/sign-in/email", json={"email": "late@example.com", "password": "wrong-pass"})
    assert resp.status_code == 401
    assert resp.json() == {
        "error": "api_error",
        "code": "INVALID_EMAIL_OR_PASSWORD",
        "message": "Invalid email or password",
        "status_code": 401,
        "path": "/api/v1/auth/sign-in/email",
    }


def test_list_and_revoke_sessions(client, user):
    first = sign_in(client, user["email"])
    second = sign_in(client, user["email"])

    sessions = client.get(f"{AUTH}/list-sessions", headers=bearer(first)).json()
    assert len(sessions) == 2
    assert {s["current"] for s in sessions} == {True, False}
    assert "device_description" in sessions[0]["device"]

    resp = client.post(f"{AUTH}/revoke-session", json={"token": second}, headers=bearer(first))
    assert resp.json() == {"status": True}
    assert client.get(f"{AUTH}/list-sessions", headers=bearer(second)).status_code == 401

    client.post(f"{AUTH}/revoke-sessions", headers=bearer(first))
    assert client.get(f"{AUTH}/get-session", headers=bearer(first)).json() is None


def test_password_reset_flow(client, user, outbox):
    resp = client.post(f"{AUTH}/request-password-reset",
                       json={"email": user["email"], "redirectTo": "http://localhost:3000/reset"})
    assert resp.json()["status"] is True
    url = outbox.last("reset")["url"]
    assert url.startswith("http://localhost:3000/reset?token=")

    resp = client.post(f"{AUTH}/reset-password", json={
        "token": token_from_url(url), "new_password": "fresh-password", "confirm_password": "fresh-password",
    })
    assert resp.json() == {"status": True}
    assert sign_in(client, user["email"], "fresh-password")


def test_change_password_and_profile(client, user):
    headers = bearer(sign_in(client, user["email"]))

    resp = client.post(f"{AUTH}/change-password", json={
        "current_password": DEFAULT_PASSWORD, "new_password": "another-pass", "confirm_password": "another-pass",
    }, headers=headers)
    assert resp.status_code == 200

    resp = client.post(f"{AUTH}/update-user", json={"job_title": "Engineer"}, headers=headers)
    updated = resp.json()["user"]
    assert updated["job_title"] == "Engineer"
    assert updated["name"] == "Alice"

    assert client.get(f"{AUTH}/list-accounts", headers=headers).json()[0]["provider_id"] == "credential"


def test_delete_user_via_api(client, user):
    headers = bearer(sign_in(client, user["email"]))
    resp = client.post(f"{AUTH}/delete-user", json={"password": "wrong-password"}, headers=headers)
    assert resp.status_code == 400

    resp = client.post(f"{AUTH}/delete-user", json={"password": DEFAULT_PASSWORD}, headers=headers)
    assert resp.json()["success"] is True
    assert client.get(f"{AUTH}/get-session", headers=headers).json() is None


def test_protected_routes_require_session(client):
    for path in ("list-sessions", "list-accounts"):
        resp = client.get(f"{AUTH}/{path}")
        assert resp.status_code == 401
    resp = client.post(f"{AUTH}/update-user", json={"name": "x"}, headers=bearer("not-a-session"))
    assert resp.status_code == 401
