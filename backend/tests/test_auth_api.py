from datetime import datetime, timezone

from photoshare.core.database import SessionLocal
from photoshare.models.api_key import ApiKey, ApiKeyLog
from photoshare.services.rate_limiter import RateLimiter

PASSWORD = "correct horse battery"


def _set_cookies(response):
    """Map cookie name -> full Set-Cookie header"""
    cookies = {}
    for header in response.headers.get_list("set-cookie"):
        name = header.split("=", 1)[0]
        cookies[name] = header
    return cookies


def _cookie_value(response, name):
    header = _set_cookies(response)[name]
    return header.split(";", 1)[0].split("=", 1)[1]


def _register(client, email, password=PASSWORD, remember=False):
    response = client.post(
        "/api/v1/auth/register",
        json={"email": email, "name": "Tester", "password": password, "remember": remember},
    )
    assert response.status_code == 201
    client.cookies.clear()
    return response


def _session_header(response):
    access = _cookie_value(response, "access_token")
    return {"Cookie": f"access_token={access}"}


def _refresh_header(token):
    return {"Cookie": f"refresh_token={token}"}


def _create_key(client, session_headers, name="ci"):
    response = client.post("/api/v1/auth/api-keys", json={"name": name}, headers=session_headers)
    client.cookies.clear()
    return response


def _key_header(raw_key, scheme="Api-Key"):
    return {"Authorization": f"{scheme} {raw_key}"}


def test_register_sets_hardened_session_cookies(client):
    response = _register(client, "cookies@example.com")
    cookies = _set_cookies(response)

    access = cookies["access_token"]
    refresh = cookies["refresh_token"]
    for header in (access, refresh):
        assert "HttpOnly" in header
        assert "Secure" in header
        assert "samesite=lax" in header.lower()
    assert "Path=/;" in access or access.endswith("Path=/")
    assert "Path=/api/v1/auth" in refresh
    assert "refresh_token" not in response.json()
    assert response.json()["user"]["email"] == "cookies@example.com"


def test_remember_me_extends_refresh_cookie(client):
    short = _register(client, "short@example.com")
    long = _register(client, "long@example.com", remember=True)

    assert "Max-Age=86400" in _set_cookies(short)["refresh_token"]
    assert f"Max-Age={30 * 86400}" in _set_cookies(long)["refresh_token"]


def test_duplicate_registration_conflicts(client):
    _register(client, "dupe@example.com")
    response = client.post(
        "/api/v1/auth/register",
        json={"email": "DUPE@example.com", "name": "Again", "password": PASSWORD},
    )
    assert response.status_code == 409


def test_login_failures_are_indistinguishable(client):
    _register(client, "login@example.com")
    wrong_password = client.post(
        "/api/v1/auth/login", json={"email": "login@example.com", "password": "nope"}
    )
    unknown_email = client.post(
        "/api/v1/auth/login", json={"email": "ghost@example.com", "password": "nope"}
    )

    assert wrong_password.status_code == unknown_email.status_code == 401
    assert wrong_password.json()["error"] == unknown_email.json()["error"]


def test_me_requires_a_credential(client):
    response = _register(client, "me@example.com")

    assert client.get("/api/v1/auth/me").status_code == 401
    me = client.get("/api/v1/auth/me", headers=_session_header(response))
    assert me.status_code == 200
    assert me.json()["email"] == "me@example.com"


def test_bearer_access_token_is_accepted(client):
    response = _register(client, "bearer@example.com")
    token = response.json()["access_token"]
    me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200


def test_refresh_rotates_and_rejects_replay(client):
    response = _register(client, "rotate@example.com")
    old_refresh = _cookie_value(response, "refresh_token")

    rotated = client.post("/api/v1/auth/refresh", headers=_refresh_header(old_refresh))
    assert rotated.status_code == 200
    new_refresh = _cookie_value(rotated, "refresh_token")
    assert new_refresh != old_refresh
    client.cookies.clear()

    replay = client.post("/api/v1/auth/refresh", headers=_refresh_header(old_refresh))
    assert replay.status_code == 401
    client.cookies.clear()

    # The whole family was revoked, including the newest token.
    after = client.post("/api/v1/auth/refresh", headers=_refresh_header(new_refresh))
    assert after.status_code == 401


def test_refresh_without_cookie(client):
    assert client.post("/api/v1/auth/refresh").status_code == 401


def test_expired_access_cookie_is_renewed_from_refresh_cookie(client):
    response = _register(client, "renew@example.com")
    refresh = _cookie_value(response, "refresh_token")

    me = client.get(
        "/api/v1/auth/me",
        headers={"Cookie": f"access_token=expired; refresh_token={refresh}"},
    )
    assert me.status_code == 200
    renewed = _set_cookies(me)
    assert "access_token" in renewed
    assert _cookie_value(me, "refresh_token") != refresh


def test_logout_revokes_refresh_session(client):
    response = _register(client, "logout@example.com")
    refresh = _cookie_value(response, "refresh_token")

    logout = client.post("/api/v1/auth/logout", headers=_refresh_header(refresh))
    assert logout.status_code == 200
    assert logout.json()["refresh_token_revoked"] is True
    assert 'access_token=""' in _set_cookies(logout)["access_token"]
    client.cookies.clear()

    assert client.post("/api/v1/auth/refresh", headers=_refresh_header(refresh)).status_code == 401


def test_api_key_lifecycle(client):
    session = _session_header(_register(client, "keys@example.com"))

    created = _create_key(client, session)
    assert created.status_code == 201
    raw_key = created.json()["key"]
    key_id = created.json()["api_key"]["id"]
    assert raw_key.startswith("kp_")
    assert created.json()["api_key"]["prefix"] == raw_key[:8]

    for scheme in ("Api-Key", "Bearer"):
        me = client.get("/api/v1/auth/me", headers=_key_header(raw_key, scheme))
        assert me.status_code == 200
        assert me.json()["email"] == "keys@example.com"

    listed = client.get("/api/v1/auth/api-keys", headers=session)
    assert listed.status_code == 200
    assert [key["id"] for key in listed.json()] == [key_id]
    assert "key" not in listed.json()[0]
    assert listed.json()[0]["daily_usage"] == 2
    client.cookies.clear()

    revoked = client.delete(f"/api/v1/auth/api-keys/{key_id}", headers=session)
    assert revoked.status_code == 200
    client.cookies.clear()
    assert client.get("/api/v1/auth/me", headers=_key_header(raw_key)).status_code == 401


def test_api_key_rotation(client):
    session = _session_header(_register(client, "rotate-key@example.com"))
    created = _create_key(client, session).json()

    rotated = client.post(f"/api/v1/auth/api-keys/{created['api_key']['id']}/rotate", headers=session)
    assert rotated.status_code == 200
    client.cookies.clear()

    assert client.get("/api/v1/auth/me", headers=_key_header(created["key"])).status_code == 401
    assert client.get("/api/v1/auth/me", headers=_key_header(rotated.json()["key"])).status_code == 200


def test_api_keys_cannot_manage_keys_or_account(client):
    session = _session_header(_register(client, "escalate@example.com"))
    raw_key = _create_key(client, session).json()["key"]

    assert client.get("/api/v1/auth/api-keys", headers=_key_header(raw_key)).status_code == 403
    assert client.post(
        "/api/v1/auth/api-keys", json={"name": "more"}, headers=_key_header(raw_key)
    ).status_code == 403
    assert client.put(
        "/api/v1/users/me/password",
        json={"current_password": PASSWORD, "new_password": "another passphrase"},
        headers=_key_header(raw_key),
    ).status_code == 403


def test_active_key_limit(client):
    session = _session_header(_register(client, "limit@example.com"))
    for i in range(3):
        assert _create_key(client, session, name=f"key-{i}").status_code == 201

    fourth = _create_key(client, session, name="key-3")
    assert fourth.status_code == 403
    assert "Maximum of 3" in fourth.json()["error"]


def test_rate_limited_requests_get_429_and_are_logged(client, monkeypatch):
    frozen = datetime(2026, 3, 14, 12, 0, 30, tzinfo=timezone.utc)
    original = RateLimiter.check_and_increment

    def at_fixed_time(db, key_id, minute_limit, daily_limit, now=None):
        return original(db, key_id, minute_limit, daily_limit, now=frozen)

    monkeypatch.setattr(RateLimiter, "check_and_increment", staticmethod(at_fixed_time))

    session = _session_header(_register(client, "throttle@example.com"))
    created = _create_key(client, session).json()
    key_id = created["api_key"]["id"]

    db = SessionLocal()
    try:
        db.get(ApiKey, key_id).minute_limit = 2
        db.commit()
    finally:
        db.close()

    statuses = [
        client.get("/api/v1/auth/me", headers=_key_header(created["key"])).status_code
        for _ in range(2)
    ]
    limited = client.get("/api/v1/auth/me", headers=_key_header(created["key"]))

    assert statuses == [200, 200]
    assert limited.status_code == 429
    assert limited.headers["Retry-After"] == "30"
    assert limited.json()["details"]["window"] == "minute"

    db = SessionLocal()
    try:
        logged = [
            row.status_code
            for row in db.query(ApiKeyLog).filter(ApiKeyLog.key_id == key_id).order_by(ApiKeyLog.id)
        ]
    finally:
        db.close()
    assert logged == [200, 200, 429]


def test_password_change_ends_all_sessions(client):
    first = _register(client, "password@example.com")
    second = client.post(
        "/api/v1/auth/login", json={"email": "password@example.com", "password": PASSWORD}
    )
    client.cookies.clear()

    changed = client.put(
        "/api/v1/users/me/password",
        json={"current_password": PASSWORD, "new_password": "brand new passphrase"},
        headers=_session_header(first),
    )
    assert changed.status_code == 200
    assert changed.json()["sessions_revoked"] == 2
    client.cookies.clear()

    for response in (first, second):
        refresh = _cookie_value(response, "refresh_token")
        assert client.post("/api/v1/auth/refresh", headers=_refresh_header(refresh)).status_code == 401
        client.cookies.clear()

    old_login = client.post(
        "/api/v1/auth/login", json={"email": "password@example.com", "password": PASSWORD}
    )
    new_login = client.post(
        "/api/v1/auth/login", json={"email": "password@example.com", "password": "brand new passphrase"}
    )
    assert old_login.status_code == 401
    assert new_login.status_code == 200


def test_wrong_current_password_is_rejected(client):
    response = _register(client, "wrong-current@example.com")
    changed = client.put(
        "/api/v1/users/me/password",
        json={"current_password": "not it", "new_password": "brand new passphrase"},
        headers=_session_header(response),
    )
    assert changed.status_code == 422


def test_audit_trail_lists_own_events(client):
    response = _register(client, "audit@example.com")
    session = _session_header(response)
    _create_key(client, session)

    events = client.get("/api/v1/users/me/audit-events", headers=session)
    assert events.status_code == 200
    actions = {event["action"] for event in events.json()}
    assert {"register", "api_key_generated"} <= actions
