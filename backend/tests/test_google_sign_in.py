import time

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jose import jwk, jwt

from photoshare.config import settings
from photoshare.core.database import SessionLocal
from photoshare.core.exceptions import AuthenticationError, BusinessLogicError
from photoshare.models.user import User
from photoshare.services.google_identity import GoogleIdentityVerifier, google_identity

CLIENT_ID = "photoshare-web.apps.googleusercontent.com"


def _rsa_pair():
    private = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = private.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
    public_pem = private.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    public_jwk = jwk.construct(public_pem, "RS256").to_dict()
    public_jwk.update({"kid": "test-key", "use": "sig"})
    return private_pem.decode(), {"keys": [public_jwk]}


@pytest.fixture(scope="module")
def google_keys():
    return _rsa_pair()


@pytest.fixture()
def configured(monkeypatch):
    monkeypatch.setattr(settings, "GOOGLE_CLIENT_ID", CLIENT_ID)


def _id_token(private_pem, **overrides):
    now = int(time.time())
    claims = {
        "iss": "https://accounts.google.com",
        "aud": CLIENT_ID,
        "sub": "google-subject-1",
        "email": "Traveller@Example.com",
        "email_verified": True,
        "name": "Traveller",
        "iat": now,
        "exp": now + 600,
    }
    claims.update(overrides)
    return jwt.encode(claims, private_pem, algorithm="RS256", headers={"kid": "test-key"})


def _verifier(key_set, fetches=None):
    verifier = GoogleIdentityVerifier()

    def fetch():
        if fetches is not None:
            fetches.append(1)
        return key_set

    verifier._fetch_keys = fetch
    return verifier


def test_valid_token_yields_identity(configured, google_keys):
    private_pem, key_set = google_keys
    identity = _verifier(key_set).verify(_id_token(private_pem))

    assert identity.subject == "google-subject-1"
    assert identity.email == "traveller@example.com"
    assert identity.name == "Traveller"


def test_short_issuer_form_is_accepted(configured, google_keys):
    private_pem, key_set = google_keys
    identity = _verifier(key_set).verify(_id_token(private_pem, iss="accounts.google.com"))
    assert identity.subject == "google-subject-1"


def test_key_set_is_cached(configured, google_keys):
    private_pem, key_set = google_keys
    fetches = []
    verifier = _verifier(key_set, fetches)

    verifier.verify(_id_token(private_pem))
    verifier.verify(_id_token(private_pem))
    assert len(fetches) == 1


@pytest.mark.parametrize(
    "overrides",
    [
        {"aud": "someone-else.apps.googleusercontent.com"},
        {"iss": "https://evil.example.com"},
        {"exp": int(time.time()) - 60},
        {"email_verified": False},
        {"email": None},
    ],
)
def test_rejected_tokens(configured, google_keys, overrides):
    private_pem, key_set = google_keys
    with pytest.raises(AuthenticationError):
        _verifier(key_set).verify(_id_token(private_pem, **overrides))


def test_token_signed_by_unknown_key_is_rejected(configured, google_keys):
    _, key_set = google_keys
    other_private, _ = _rsa_pair()
    with pytest.raises(AuthenticationError):
        _verifier(key_set).verify(_id_token(other_private))


def test_unreachable_key_set_is_an_authentication_failure(configured):
    verifier = GoogleIdentityVerifier()

    def fail():
        raise httpx.ConnectError("unreachable")

    verifier._fetch_keys = fail
    with pytest.raises(AuthenticationError):
        verifier.verify("anything")


def test_unconfigured_client_id_is_refused(monkeypatch, google_keys):
    monkeypatch.setattr(settings, "GOOGLE_CLIENT_ID", "")
    private_pem, key_set = google_keys
    with pytest.raises(BusinessLogicError):
        _verifier(key_set).verify(_id_token(private_pem))


@pytest.fixture()
def google_client(client, configured, monkeypatch, google_keys):
    _, key_set = google_keys
    monkeypatch.setattr(google_identity, "signing_keys", lambda: key_set)
    return client


def test_google_sign_in_creates_user_and_session(google_client, google_keys):
    private_pem, _ = google_keys
    response = google_client.post(
        "/api/v1/auth/google", json={"id_token": _id_token(private_pem), "remember": True}
    )
    google_client.cookies.clear()

    assert response.status_code == 200
    assert response.json()["user"]["email"] == "traveller@example.com"
    set_cookies = response.headers.get_list("set-cookie")
    assert any(header.startswith("access_token=") for header in set_cookies)
    refresh = next(header for header in set_cookies if header.startswith("refresh_token="))
    assert f"Max-Age={30 * 86400}" in refresh

    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == "traveller@example.com").one()
        assert user.google_id == "google-subject-1"
    finally:
        db.close()

    access = next(header for header in set_cookies if header.startswith("access_token="))
    me = google_client.get(
        "/api/v1/auth/me", headers={"Cookie": access.split(";", 1)[0]}
    )
    assert me.status_code == 200


def test_google_sign_in_links_password_account(google_client, google_keys):
    private_pem, _ = google_keys
    registered = google_client.post(
        "/api/v1/auth/register",
        json={"email": "traveller@example.com", "name": "Traveller", "password": "correct horse battery"},
    )
    google_client.cookies.clear()

    response = google_client.post("/api/v1/auth/google", json={"id_token": _id_token(private_pem)})
    google_client.cookies.clear()

    assert response.status_code == 200
    assert response.json()["user"]["id"] == registered.json()["user"]["id"]


def test_google_sign_in_rejects_bad_token(google_client, google_keys):
    private_pem, _ = google_keys
    response = google_client.post(
        "/api/v1/auth/google",
        json={"id_token": _id_token(private_pem, aud="someone-else")},
    )
    assert response.status_code == 401
    assert "set-cookie" not in response.headers


def test_google_sign_in_refuses_api_keys(google_client, google_keys):
    private_pem, _ = google_keys
    registered = google_client.post(
        "/api/v1/auth/register",
        json={"email": "keyholder@example.com", "name": "Keys", "password": "correct horse battery"},
    )
    google_client.cookies.clear()
    access = next(
        header.split(";", 1)[0]
        for header in registered.headers.get_list("set-cookie")
        if header.startswith("access_token=")
    )
    created = google_client.post("/api/v1/auth/api-keys", json={"name": "ci"}, headers={"Cookie": access})
    google_client.cookies.clear()

    response = google_client.post(
        "/api/v1/auth/google",
        json={"id_token": _id_token(private_pem)},
        headers={"Authorization": f"Api-Key {created.json()['key']}"},
    )
    assert response.status_code == 403
