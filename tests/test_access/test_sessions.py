"""
Tests for the session lifecycle: sliding expiry and revocation.
"""
from __future__ import annotations

from datetime import timedelta

import pytest

from workspace_access.access.errors import AccountSuspended, SessionExpired, SessionInvalid, SessionRevoked
from workspace_access.access.sessions import SessionManager
from workspace_access.access.tokens import TOKEN_HASH_LENGTH


def test_create_stores_only_the_token_hash(db_session, session_manager, make_user):
    user = make_user("a@example.com")

    session, token = session_manager.create(user, ip_address="10.0.0.1")

    assert token
    assert session.token_hash != token
    assert len(session.token_hash) == TOKEN_HASH_LENGTH
    assert session.ip_address == "10.0.0.1"


def test_validate_unknown_token_is_invalid(session_manager):
    with pytest.raises(SessionInvalid):
        session_manager.validate("not-a-real-token")
    with pytest.raises(SessionInvalid):
        session_manager.validate("")


def test_sliding_window_scenario(db_session, clock, session_manager, make_user):
    user = make_user("slide@example.com")
    start = clock()
    session, token = session_manager.create(user)
    db_session.commit()
    assert session.expires_at == start + timedelta(hours=21)

    # Used at T0+20h: expiry slides to T0+41h.
    clock.advance(hours=20)
    session_manager.validate(token)
    db_session.commit()
    db_session.refresh(session)
    assert session.expires_at == start + timedelta(hours=41)

    # Idle until T0+41h+1m: expired.
    clock.now = start + timedelta(hours=41, minutes=1)
    with pytest.raises(SessionExpired):
        session_manager.validate(token)


def test_successive_renewals_never_shorten_expiry(db_session, clock, session_manager, make_user):
    user = make_user("renew@example.com")
    session, token = session_manager.create(user)
    db_session.commit()

    clock.advance(minutes=5)
    session_manager.validate(token)
    db_session.refresh(session)
    first = session.expires_at

    clock.advance(minutes=5)
    session_manager.validate(token)
    db_session.refresh(session)

    assert session.expires_at >= first


def test_revoked_session_fails_even_before_expiry(db_session, session_manager, make_user):
    user = make_user("revoked@example.com")
    session, token = session_manager.create(user)
    db_session.commit()

    assert session_manager.revoke(session, "logout") is True
    db_session.commit()

    with pytest.raises(SessionRevoked):
        session_manager.validate(token)


def test_revocation_is_checked_before_expiry(db_session, clock, session_manager, make_user):
    user = make_user("both@example.com")
    session, token = session_manager.create(user)
    session_manager.revoke(session, "security")
    db_session.commit()

    clock.advance(days=3)

    with pytest.raises(SessionRevoked):
        session_manager.validate(token)


def test_revoke_is_idempotent(db_session, clock, session_manager, make_user):
    user = make_user("twice@example.com")
    session, _ = session_manager.create(user)

    assert session_manager.revoke(session, "logout") is True
    first_revoked_at = session.revoked_at
    clock.advance(minutes=1)

    assert session_manager.revoke(session, "security") is False
    db_session.refresh(session)
    assert session.revoked_at == first_revoked_at
    assert session.revocation_reason == "logout"


def test_revoke_requires_known_reason(session_manager, make_user):
    session, _ = session_manager.create(make_user("reason@example.com"))

    with pytest.raises(ValueError):
        session_manager.revoke(session, "bored")


def test_revoke_all_keeps_the_current_session(db_session, session_manager, make_user):
    user = make_user("many@example.com")
    current, current_token = session_manager.create(user)
    session_manager.create(user)
    session_manager.create(user)

    assert session_manager.revoke_all_for_user(user.id, "credential_change", except_session_id=current.id) == 2
    db_session.commit()

    session_manager.validate(current_token)
    assert [s.id for s in session_manager.active_sessions(user.id)] == [current.id]


def test_suspended_owner_cannot_use_a_session(db_session, session_manager, make_user):
    user = make_user("frozen@example.com")
    _, token = session_manager.create(user)
    user.status = "suspended"
    db_session.commit()

    with pytest.raises(AccountSuspended):
        session_manager.validate(token)


def test_soft_deleted_owner_invalidates_session(db_session, clock, session_manager, make_user):
    user = make_user("deleted@example.com")
    _, token = session_manager.create(user)
    user.deleted_at = clock()
    db_session.commit()

    with pytest.raises(SessionInvalid):
        session_manager.validate(token)


def test_switch_tenant_leaves_expiry_alone(db_session, session_manager, tenant, make_user):
    user = make_user("switch@example.com")
    session, _ = session_manager.create(user)
    expires_at = session.expires_at

    session_manager.switch_tenant(session, tenant.id)
    db_session.commit()
    db_session.refresh(session)

    assert session.current_tenant_id == tenant.id
    assert session.expires_at == expires_at


def test_renew_threshold_skips_recent_activity(db_session, clock, make_user):
    manager = SessionManager(db_session, secret="s", renew_threshold=timedelta(minutes=5), clock=clock)
    session, token = manager.create(make_user("threshold@example.com"))
    db_session.commit()
    original = session.expires_at

    clock.advance(minutes=1)
    manager.validate(token)
    db_session.refresh(session)
    assert session.expires_at == original

    clock.advance(minutes=10)
    manager.validate(token)
    db_session.refresh(session)
    assert session.expires_at == clock() + timedelta(hours=21)


def test_tokens_are_bound_to_the_secret(db_session, clock, make_user):
    user = make_user("secret@example.com")
    _, token = SessionManager(db_session, secret="one", clock=clock).create(user)

    with pytest.raises(SessionInvalid):
        SessionManager(db_session, secret="two", clock=clock).validate(token)


def test_empty_secret_is_rejected(db_session):
    with pytest.raises(ValueError):
        SessionManager(db_session, secret="")


def test_revoke_is_visible_on_the_loaded_instance(clock, session_manager, make_user):
    session, _ = session_manager.create(make_user("inflight@example.com"))

    assert session_manager.revoke(session, "logout") is True

    assert session.revoked_at == clock()
    assert session.revocation_reason == "logout"


def test_bulk_revocation_is_seen_without_commit(session_manager, make_user):
    user = make_user("bulk@example.com")
    current, _ = session_manager.create(user)
    _, other_token = session_manager.create(user)

    session_manager.revoke_all_for_user(user.id, "security", except_session_id=current.id)

    with pytest.raises(SessionRevoked):
        session_manager.validate(other_token)
