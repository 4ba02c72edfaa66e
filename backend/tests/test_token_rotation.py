import threading
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from photoshare.core.database import Base
from photoshare.core.exceptions import AuthenticationError, CredentialTheftDetected
from photoshare.core.security import create_refresh_token, decode_access_token, decode_refresh_token
from photoshare.models.audit import AuditEvent
from photoshare.models.security import RefreshToken
from photoshare.models.user import User
from photoshare.services import token_service as token_service_module
from photoshare.services.token_service import token_service


def _family_rows(db, family_id):
    return db.query(RefreshToken).filter(RefreshToken.family_id == family_id).all()


def test_issue_session_persists_hashed_refresh_token(db_session, make_user):
    user = make_user("issue@example.com")
    access, refresh = token_service.issue_session(db_session, user)

    assert decode_access_token(access)["sub"] == user.id
    payload = decode_refresh_token(refresh)
    record = db_session.get(RefreshToken, payload["jti"])
    assert record is not None
    assert record.family_id == payload["fam"]
    assert record.token_hash != refresh


def test_rotation_replaces_session_within_family(db_session, make_user):
    user = make_user("rotate@example.com")
    _, refresh = token_service.issue_session(db_session, user)
    old = decode_refresh_token(refresh)

    rotated_user, access, new_refresh = token_service.rotate_refresh_token(db_session, refresh)
    new = decode_refresh_token(new_refresh)

    assert rotated_user.id == user.id
    assert decode_access_token(access)["sub"] == user.id
    assert new["fam"] == old["fam"]
    assert new["jti"] != old["jti"]
    assert db_session.get(RefreshToken, old["jti"]) is None
    assert [row.id for row in _family_rows(db_session, old["fam"])] == [new["jti"]]


def test_replayed_token_revokes_whole_family(db_session, make_user):
    user = make_user("replay@example.com")
    _, first = token_service.issue_session(db_session, user)
    _, _, second = token_service.rotate_refresh_token(db_session, first)
    family_id = decode_refresh_token(first)["fam"]

    with pytest.raises(CredentialTheftDetected) as exc_info:
        token_service.rotate_refresh_token(db_session, first)
    assert exc_info.value.status_code == 401
    assert exc_info.value.family_id == family_id

    assert _family_rows(db_session, family_id) == []
    # The legitimate holder's newer token is gone with the family.
    with pytest.raises(AuthenticationError):
        token_service.rotate_refresh_token(db_session, second)


def test_replay_is_recorded_in_audit_trail(db_session, make_user):
    user = make_user("audit-replay@example.com")
    _, first = token_service.issue_session(db_session, user)
    token_service.rotate_refresh_token(db_session, first)

    with pytest.raises(CredentialTheftDetected):
        token_service.rotate_refresh_token(db_session, first)

    events = db_session.query(AuditEvent).filter(AuditEvent.action == "refresh_reuse_detected").all()
    assert len(events) == 1
    assert events[0].user_id == user.id
    assert events[0].target_id == decode_refresh_token(first)["jti"]


def test_forged_token_for_live_session_revokes_it(db_session, make_user):
    user = make_user("forged@example.com")
    _, refresh = token_service.issue_session(db_session, user)
    payload = decode_refresh_token(refresh)
    forged = create_refresh_token(user.id, payload["jti"], "another-family")

    with pytest.raises(CredentialTheftDetected):
        token_service.rotate_refresh_token(db_session, forged)
    assert db_session.get(RefreshToken, payload["jti"]) is None


def test_sessions_in_other_families_survive_a_replay(db_session, make_user):
    user = make_user("devices@example.com")
    _, laptop = token_service.issue_session(db_session, user)
    _, phone = token_service.issue_session(db_session, user)
    token_service.rotate_refresh_token(db_session, laptop)

    with pytest.raises(CredentialTheftDetected):
        token_service.rotate_refresh_token(db_session, laptop)

    rotated_user, _, _ = token_service.rotate_refresh_token(db_session, phone)
    assert rotated_user.id == user.id


def test_expired_session_is_plain_authentication_failure(db_session, make_user):
    user = make_user("expired@example.com")
    _, refresh = token_service.issue_session(db_session, user)
    record = db_session.get(RefreshToken, decode_refresh_token(refresh)["jti"])
    record.expires_at = datetime.now(timezone.utc) - timedelta(minutes=1)
    db_session.commit()

    with pytest.raises(AuthenticationError) as exc_info:
        token_service.rotate_refresh_token(db_session, refresh)
    assert not isinstance(exc_info.value, CredentialTheftDetected)
    assert db_session.get(RefreshToken, record.id) is None


@pytest.mark.parametrize("token", [None, "", "garbage"])
def test_invalid_token_is_rejected(db_session, token):
    with pytest.raises(AuthenticationError):
        token_service.rotate_refresh_token(db_session, token)


def test_unknown_family_is_not_treated_as_theft(db_session, make_user):
    user = make_user("unknown-family@example.com")
    stray = create_refresh_token(user.id, "no-such-session", "no-such-family")

    with pytest.raises(AuthenticationError) as exc_info:
        token_service.rotate_refresh_token(db_session, stray)
    assert not isinstance(exc_info.value, CredentialTheftDetected)


def test_remembered_session_keeps_its_lifetime(db_session, make_user):
    user = make_user("remember@example.com")
    _, refresh = token_service.issue_session(db_session, user, remember=True)
    _, _, renewed = token_service.rotate_refresh_token(db_session, refresh)

    payload = decode_refresh_token(renewed)
    assert payload["exp"] - payload["iat"] == 30 * 24 * 3600


def test_default_session_lifetime(db_session, make_user):
    user = make_user("short@example.com")
    _, refresh = token_service.issue_session(db_session, user)
    payload = decode_refresh_token(refresh)
    assert payload["exp"] - payload["iat"] == 24 * 3600


def test_revoke_refresh_token_logs_out_one_session(db_session, make_user):
    user = make_user("logout@example.com")
    _, refresh = token_service.issue_session(db_session, user)
    _, other = token_service.issue_session(db_session, user)

    assert token_service.revoke_refresh_token(db_session, refresh) is True
    assert token_service.revoke_refresh_token(db_session, refresh) is False
    assert token_service.revoke_refresh_token(db_session, None) is False
    assert db_session.get(RefreshToken, decode_refresh_token(other)["jti"]) is not None


def test_revoke_all_for_user(db_session, make_user):
    user = make_user("everywhere@example.com")
    bystander = make_user("bystander@example.com")
    for _ in range(3):
        token_service.issue_session(db_session, user)
    token_service.issue_session(db_session, bystander)

    assert token_service.revoke_all_for_user(db_session, user.id) == 3
    assert db_session.query(RefreshToken).filter(RefreshToken.user_id == user.id).count() == 0
    assert db_session.query(RefreshToken).filter(RefreshToken.user_id == bystander.id).count() == 1


def test_concurrent_rotation_of_one_token_succeeds_once(tmp_path, monkeypatch):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'sessions.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    setup = SessionLocal()
    user = User(email="race@example.com", name="Race")
    setup.add(user)
    setup.commit()
    _, refresh = token_service.issue_session(setup, user)
    family_id = decode_refresh_token(refresh)["fam"]
    setup.close()

    # Both requests pass the hash check before either claims the session.
    checked = threading.Barrier(2, timeout=30)
    real_verify = token_service_module.verify_password

    def verify_then_wait(plain, hashed):
        result = real_verify(plain, hashed)
        checked.wait()
        return result

    monkeypatch.setattr(token_service_module, "verify_password", verify_then_wait)

    outcomes = []
    lock = threading.Lock()

    def worker():
        db = SessionLocal()
        try:
            token_service.rotate_refresh_token(db, refresh)
            outcome = "rotated"
        except CredentialTheftDetected:
            outcome = "theft"
        except AuthenticationError:
            outcome = "rejected"
        except Exception as exc:  # surfaced by the assertion below
            outcome = repr(exc)
        finally:
            db.close()
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(outcomes) == ["rejected", "rotated"]

    db = SessionLocal()
    try:
        assert len(_family_rows(db, family_id)) == 1
        assert db.query(AuditEvent).filter(AuditEvent.action == "refresh_reuse_detected").count() == 0
    finally:
        db.close()
        engine.dispose()
