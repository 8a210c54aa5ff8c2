"""
SQLAlchemy adapter over the ``email_verifications`` table.

The store owns every read and write of verification records. It commits its
own transactions so the service layer never has to reason about session state,
and it turns persistence failures into ``StoreWriteError``.
"""
import logging
from datetime import timedelta
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type, before_sleep_log

from models.email_verification import EmailVerification, PURPOSE_SIGNUP
from services.exceptions import StoreWriteError
from utils.clock import utc_now
from utils.logger_factory import new_logger

log = new_logger("verification_store")
store_retry_logger = new_logger("verification_store_retry")

# Transient connection problems are retried; anything else surfaces immediately
transient_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type(OperationalError),
    before_sleep=before_sleep_log(store_retry_logger, logging.WARNING),
    reraise=True,
)

# A concurrent issuance for the same email can win the unique pending index;
# replaying the delete+insert makes the later writer win.
replace_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
    retry=retry_if_exception_type((OperationalError, IntegrityError)),
    before_sleep=before_sleep_log(store_retry_logger, logging.WARNING),
    reraise=True,
)


class VerificationStore:
    def __init__(self, db: Session, clock: Callable = utc_now):
        self.db = db
        self.clock = clock

    def _pending_query(self, email: str, purpose: str):
        return self.db.query(EmailVerification).filter(
            EmailVerification.email == email,
            EmailVerification.purpose == purpose,
            EmailVerification.verified == False,  # noqa: E712
        )

    @transient_retry
    def _commit_delete(self, query) -> int:
        try:
            deleted = query.delete(synchronize_session=False)
            self.db.commit()
            return deleted
        except SQLAlchemyError:
            self.db.rollback()
            raise

    def delete_unverified(self, email: str, purpose: str = PURPOSE_SIGNUP) -> int:
        """Remove every unverified record for ``email``. Safe to call when none exist."""
        try:
            deleted = self._commit_delete(self._pending_query(email, purpose))
        except SQLAlchemyError as e:
            log.exception(f"Failed to delete pending codes for {email} ({purpose})")
            raise StoreWriteError(f"delete_unverified failed: {e}") from e
        log.info(f"Deleted {deleted} pending {purpose} code(s) for {email}")
        return deleted

    @transient_retry
    def _commit_insert(self, record: EmailVerification) -> EmailVerification:
        try:
            self.db.add(record)
            self.db.commit()
            self.db.refresh(record)
            return record
        except SQLAlchemyError:
            self.db.rollback()
            record.id = None
            raise

    def insert(self, record: EmailVerification) -> EmailVerification:
        try:
            return self._commit_insert(record)
        except SQLAlchemyError as e:
            log.exception(f"Failed to insert verification record for {record.email}")
            raise StoreWriteError(f"insert failed: {e}") from e

    @replace_retry
    def _commit_replace(self, record: EmailVerification) -> EmailVerification:
        try:
            self._pending_query(record.email, record.purpose).delete(synchronize_session=False)
            self.db.add(record)
            self.db.commit()
            self.db.refresh(record)
            return record
        except SQLAlchemyError:
            self.db.rollback()
            record.id = None
            raise

    def replace_unverified(self, record: EmailVerification) -> EmailVerification:
        """
        Delete the pending records for the record's email and purpose and insert
        ``record`` in a single transaction.

        Raises:
            StoreWriteError: the transaction could not be committed.
        """
        try:
            saved = self._commit_replace(record)
        except SQLAlchemyError as e:
            log.exception(f"Failed to store verification record for {record.email} ({record.purpose})")
            raise StoreWriteError(f"replace_unverified failed: {e}") from e
        log.info(f"Stored verification record [{saved.to_dict()}]")
        return saved

    @transient_retry
    def find_active(self, email: str, code: str, purpose: str = PURPOSE_SIGNUP) -> Optional[EmailVerification]:
        """Return the unverified, unexpired record matching email and code, else None."""
        now = self.clock()
        try:
            return self._pending_query(email, purpose).filter(
                EmailVerification.code == code,
                EmailVerification.expires_at > now,
            ).first()
        except OperationalError:
            self.db.rollback()
            raise

    @transient_retry
    def _commit_mark_verified(self, record_id: int, now) -> int:
        try:
            updated = self.db.query(EmailVerification).filter(
                EmailVerification.id == record_id,
                EmailVerification.verified == False,  # noqa: E712
                EmailVerification.expires_at > now,
            ).update({"verified": True, "verified_at": now}, synchronize_session=False)
            self.db.commit()
            return updated
        except SQLAlchemyError:
            self.db.rollback()
            raise

    def mark_verified(self, record: EmailVerification) -> bool:
        """
        Flip ``record`` to verified with a conditional update.

        Returns False when another confirmation already consumed the record (or
        it expired in between), so at most one caller ever wins.

        Raises:
            StoreWriteError: the update could not be committed; the stored
                record keeps its previous state.
        """
        now = self.clock()
        try:
            updated = self._commit_mark_verified(record.id, now)
        except SQLAlchemyError as e:
            log.exception(f"Failed to mark verification record {record.id} as verified")
            raise StoreWriteError(f"mark_verified failed: {e}") from e
        if updated != 1:
            log.info(f"Verification record {record.id} was already consumed or expired")
            return False
        self.db.refresh(record)
        return True

    def delete_by_code(self, email: str, code: str, purpose: str = PURPOSE_SIGNUP) -> int:
        query = self._pending_query(email, purpose).filter(EmailVerification.code == code)
        try:
            deleted = self._commit_delete(query)
        except SQLAlchemyError as e:
            log.exception(f"Failed to roll back verification code for {email} ({purpose})")
            raise StoreWriteError(f"delete_by_code failed: {e}") from e
        log.info(f"Rolled back {deleted} {purpose} code(s) for {email}")
        return deleted

    def purge_expired(self, verified_older_than: Optional[timedelta] = None, dry_run: bool = False) -> int:
        """
        Housekeeping sweep: remove expired unverified records and, when
        ``verified_older_than`` is given, verified records consumed before
        ``now - verified_older_than``.
        """
        now = self.clock()
        expired = self.db.query(EmailVerification).filter(
            EmailVerification.verified == False,  # noqa: E712
            EmailVerification.expires_at <= now,
        )
        queries = [expired]
        if verified_older_than is not None:
            queries.append(self.db.query(EmailVerification).filter(
                EmailVerification.verified == True,  # noqa: E712
                EmailVerification.verified_at < now - verified_older_than,
            ))

        if dry_run:
            return sum(query.count() for query in queries)

        total = 0
        try:
            for query in queries:
                total += query.delete(synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            log.exception("Purge of expired verification records failed")
            raise StoreWriteError(f"purge_expired failed: {e}") from e
        log.info(f"Purged {total} stale verification record(s)")
        return total
