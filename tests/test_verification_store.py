from datetime import timedelta

import pytest
from sqlalchemy.exc import SQLAlchemyError

from models.email_verification import EmailVerification, PURPOSE_RESET, PURPOSE_SIGNUP
from services.exceptions import StoreWriteError
from services.verification_store import VerificationStore


def make_record(clock, email="a@example.com", code="123456", purpose=PURPOSE_SIGNUP, minutes=10):
    now = clock()
    return EmailVerification(
        email=email,
        code=code,
        purpose=purpose,
        created_at=now,
        expires_at=now + timedelta(minutes=minutes),
        verified=False,
    )


def rows_for(db, email):
    db.expire_all()
    return db.query(EmailVerification).filter_by(email=email).all()


def test_delete_unverified_is_idempotent(store):
    assert store.delete_unverified("nobody@example.com") == 0
    assert store.delete_unverified("nobody@example.com") == 0


def test_insert_then_find_active(store, clock):
    saved = store.insert(make_record(clock))
    assert saved.id is not None

    found = store.find_active("a@example.com", "123456")
    assert found is not None
    assert found.id == saved.id


def test_find_active_requires_exact_email_code_and_purpose(store, clock):
    store.insert(make_record(clock))

    assert store.find_active("a@example.com", "654321") is None
    assert store.find_active("A@example.com", "123456") is None
    assert store.find_active("a@example.com", "123456", PURPOSE_RESET) is None


def test_find_active_ignores_expired_records(store, clock):
    store.insert(make_record(clock))

    clock.advance(minutes=9, seconds=59)
    assert store.find_active("a@example.com", "123456") is not None

    clock.advance(seconds=1)  # exactly expires_at
    assert store.find_active("a@example.com", "123456") is None


def test_mark_verified_flips_once(store, clock):
    record = store.insert(make_record(clock))

    assert store.mark_verified(record) is True
    assert record.verified is True
    assert record.verified_at == clock()

    assert store.mark_verified(record) is False
    assert store.find_active("a@example.com", "123456") is None


def test_racing_confirmations_only_one_wins(db, other_db, clock):
    first = VerificationStore(db, clock=clock)
    second = VerificationStore(other_db, clock=clock)
    first.insert(make_record(clock))

    # Both callers pass the lookup before either marks the record
    seen_by_first = first.find_active("a@example.com", "123456")
    seen_by_second = second.find_active("a@example.com", "123456")
    assert seen_by_first is not None and seen_by_second is not None

    assert first.mark_verified(seen_by_first) is True
    assert second.mark_verified(seen_by_second) is False


def test_replace_unverified_keeps_single_pending_record(store, db, clock):
    store.replace_unverified(make_record(clock, code="111111"))
    store.replace_unverified(make_record(clock, code="222222"))

    rows = rows_for(db, "a@example.com")
    assert [row.code for row in rows] == ["222222"]


def test_replace_unverified_retries_after_concurrent_insert(store, db, other_db, clock, monkeypatch):
    real_pending_query = store._pending_query
    calls = []

    def pending_query_missing_concurrent_row(email, purpose):
        calls.append(email)
        if len(calls) == 1:
            # First attempt deletes before the other session's row is visible
            return real_pending_query("nobody@example.com", purpose)
        return real_pending_query(email, purpose)

    VerificationStore(other_db, clock=clock).insert(make_record(clock, code="111111"))
    monkeypatch.setattr(store, "_pending_query", pending_query_missing_concurrent_row)

    saved = store.replace_unverified(make_record(clock, code="222222"))

    assert len(calls) == 2
    assert saved.id is not None
    rows = rows_for(db, "a@example.com")
    assert [(row.code, row.verified) for row in rows] == [("222222", False)]


def test_replace_unverified_gives_up_on_persistent_conflict(store, db, other_db, clock, monkeypatch):
    real_pending_query = store._pending_query
    monkeypatch.setattr(
        store, "_pending_query", lambda email, purpose: real_pending_query("nobody@example.com", purpose)
    )
    VerificationStore(other_db, clock=clock).insert(make_record(clock, code="111111"))

    with pytest.raises(StoreWriteError):
        store.replace_unverified(make_record(clock, code="222222"))

    rows = rows_for(db, "a@example.com")
    assert [row.code for row in rows] == ["111111"]


def test_replace_unverified_preserves_verified_history(store, db, clock):
    old = store.replace_unverified(make_record(clock, code="111111"))
    assert store.mark_verified(old)

    store.replace_unverified(make_record(clock, code="222222"))

    rows = sorted(rows_for(db, "a@example.com"), key=lambda row: row.code)
    assert [(row.code, row.verified) for row in rows] == [("111111", True), ("222222", False)]


def test_replace_unverified_scoped_to_purpose(store, db, clock):
    store.replace_unverified(make_record(clock, code="111111", purpose=PURPOSE_SIGNUP))
    store.replace_unverified(make_record(clock, code="222222", purpose=PURPOSE_RESET))

    assert len(rows_for(db, "a@example.com")) == 2


def test_delete_by_code_only_removes_matching_pending_record(store, db, clock):
    store.insert(make_record(clock, email="a@example.com", code="111111"))
    store.insert(make_record(clock, email="b@example.com", code="111111"))

    assert store.delete_by_code("a@example.com", "111111") == 1
    assert rows_for(db, "a@example.com") == []
    assert len(rows_for(db, "b@example.com")) == 1


def test_insert_failure_raises_store_write_error(store, db, clock, monkeypatch):
    def broken_commit():
        raise SQLAlchemyError("disk I/O error")

    with monkeypatch.context() as m:
        m.setattr(db, "commit", broken_commit)
        with pytest.raises(StoreWriteError):
            store.insert(make_record(clock))

    assert rows_for(db, "a@example.com") == []


def test_mark_verified_failure_keeps_record_pending(store, db, clock, monkeypatch):
    record = store.insert(make_record(clock))

    def broken_commit():
        raise SQLAlchemyError("connection reset")

    with monkeypatch.context() as m:
        m.setattr(db, "commit", broken_commit)
        with pytest.raises(StoreWriteError):
            store.mark_verified(record)

    assert store.find_active("a@example.com", "123456") is not None


def test_purge_expired(store, db, clock):
    store.insert(make_record(clock, email="old@example.com", minutes=1))
    consumed = store.insert(make_record(clock, email="used@example.com"))
    assert store.mark_verified(consumed)
    clock.advance(minutes=5)
    store.insert(make_record(clock, email="fresh@example.com"))

    assert store.purge_expired(dry_run=True) == 1
    assert store.purge_expired() == 1
    assert rows_for(db, "old@example.com") == []
    assert len(rows_for(db, "used@example.com")) == 1
    assert len(rows_for(db, "fresh@example.com")) == 1

    clock.advance(days=31)
    assert store.purge_expired(verified_older_than=timedelta(days=30)) == 2
    assert rows_for(db, "used@example.com") == []
