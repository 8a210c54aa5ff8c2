"""
Verification code lifecycle: issue a code by email, then confirm it.

States per (email, purpose): no code -> pending -> verified. A pending code is
treated as expired once ``now >= expires_at``; expiry is computed, not stored.

``issue`` is not atomic across the store and the mail server. When delivery
fails the freshly stored code is deleted again so nobody is left holding a
valid code they never received.
"""
import os
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from models.email_verification import EmailVerification, PURPOSES, PURPOSE_RESET, PURPOSE_SIGNUP
from services.exceptions import (
    InvalidOrExpiredCodeError,
    StoreWriteError,
    ValidationError,
    VerificationError,
)
from services.mail_dispatcher import MailDispatcher
from services.verification_store import VerificationStore
from templates.verification_email import render_code_email
from utils.clock import utc_now
from utils.code_generator import generate_code
from utils.email_format import is_valid_code, is_valid_email
from utils.logger_factory import new_logger

CODE_EXPIRY_MINUTES = 10

log = new_logger("verification_service")


@dataclass(frozen=True)
class IssueReceipt:
    email: str
    purpose: str
    expires_at: datetime


class VerificationService:
    def __init__(
        self,
        store: VerificationStore,
        dispatcher: MailDispatcher,
        code_generator: Callable[[], str] = generate_code,
        clock: Callable[[], datetime] = utc_now,
        expiry: timedelta = timedelta(minutes=CODE_EXPIRY_MINUTES),
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.code_generator = code_generator
        self.clock = clock
        self.expiry = expiry

    @staticmethod
    def _check_purpose(purpose: str) -> None:
        if purpose not in PURPOSES:
            raise ValidationError(f"Unknown verification purpose: {purpose}")

    def issue(self, email: str, display_name: Optional[str] = None,
              purpose: str = PURPOSE_SIGNUP) -> IssueReceipt:
        """
        Generate, store and email a new code for ``email``.

        Any pending code for the same email and purpose is discarded first. The
        code itself is never returned; only the store and the recipient's
        inbox know it.

        Raises:
            ValidationError: malformed email or unknown purpose.
            StoreWriteError: the code could not be stored; nothing was sent.
            DeliveryError, InvalidAddressError, ConfigurationError: the email
                could not be sent; the stored code has been rolled back. Any
                other error raised while sending is rolled back the same way.
        """
        if not is_valid_email(email):
            raise ValidationError("Invalid email format")
        self._check_purpose(purpose)

        code = self.code_generator()
        now = self.clock()
        record = EmailVerification(
            email=email,
            code=code,
            purpose=purpose,
            created_at=now,
            expires_at=now + self.expiry,
            verified=False,
        )
        record = self.store.replace_unverified(record)
        expires_at = record.expires_at
        log.info(f"Issued {purpose} code for {email} (record {record.id}, expires {expires_at.isoformat()})")

        content = render_code_email(
            code,
            display_name=display_name,
            purpose=purpose,
            expiry_minutes=int(self.expiry.total_seconds() // 60),
        )
        try:
            self.dispatcher.send(email, content.subject, content.text, content.html)
        except Exception as e:
            log.error(f"Delivery of {purpose} code to {email} failed, rolling back: {e!r}")
            self._rollback(email, code, purpose)
            raise

        log.info(f"{purpose.capitalize()} code email sent to {email}")
        return IssueReceipt(email=email, purpose=purpose, expires_at=expires_at)

    def _rollback(self, email: str, code: str, purpose: str) -> None:
        try:
            self.store.delete_by_code(email, code, purpose)
        except StoreWriteError:
            # The stranded code was never delivered, so nobody can use it
            log.exception(f"Rollback of undelivered {purpose} code for {email} failed")

    def confirm(self, email: str, code: str, purpose: str = PURPOSE_SIGNUP) -> EmailVerification:
        """
        Consume a pending code.

        Wrong, expired and already-used codes all fail the same way. A failed
        confirmation leaves the stored record untouched, so the user can retry
        until the code expires.

        Raises:
            ValidationError: malformed email, or code is not exactly 6 digits.
            InvalidOrExpiredCodeError: no matching pending, unexpired code.
            StoreWriteError: the verified flag could not be persisted.
        """
        if not is_valid_email(email):
            raise ValidationError("Invalid email format")
        if not is_valid_code(code):
            raise ValidationError("Verification code must be 6 digits")
        self._check_purpose(purpose)

        record = self.store.find_active(email, code, purpose)
        if record is None:
            log.info(f"No active {purpose} code matched for {email}")
            raise InvalidOrExpiredCodeError()

        if not self.store.mark_verified(record):
            # Lost a race with a concurrent confirmation of the same code
            raise InvalidOrExpiredCodeError()

        log.info(f"Verified {purpose} code for {email} [{record.to_dict()}]")
        return record

    def issue_password_reset(self, email: str, display_name: Optional[str] = None) -> IssueReceipt:
        return self.issue(email, display_name, purpose=PURPOSE_RESET)

    def confirm_password_reset(self, email: str, code: str) -> EmailVerification:
        return self.confirm(email, code, purpose=PURPOSE_RESET)


@dataclass
class VerificationOutcome:
    success: bool
    kind: Optional[str] = None
    message: Optional[str] = None
    details: Optional[str] = None
    status_code: int = 200
    record: Optional[EmailVerification] = None
    expires_at: Optional[datetime] = None


def details_exposed() -> bool:
    return os.environ.get("APP_ENV", "production").strip().lower() == "development"


def _failure(error: Exception) -> VerificationOutcome:
    if isinstance(error, VerificationError):
        return VerificationOutcome(
            success=False,
            kind=error.kind,
            message=error.public_message,
            details=error.detail if details_exposed() else None,
            status_code=error.status_code,
        )
    return VerificationOutcome(
        success=False,
        kind="InternalError",
        message="Internal server error",
        details=str(error) if details_exposed() else None,
        status_code=500,
    )


def issue_verification(service: VerificationService, email: str, display_name: Optional[str] = None,
                       purpose: str = PURPOSE_SIGNUP) -> VerificationOutcome:
    """Run ``service.issue`` and report the result instead of raising."""
    try:
        receipt = service.issue(email, display_name, purpose)
    except VerificationError as e:
        log.warning(f"issue({email}, {purpose}) failed with {e.kind}: {e.detail}")
        return _failure(e)
    except Exception as e:
        log.exception(f"Unexpected error issuing {purpose} code for {email}")
        return _failure(e)
    return VerificationOutcome(success=True, expires_at=receipt.expires_at)


def confirm_verification(service: VerificationService, email: str, code: str,
                         purpose: str = PURPOSE_SIGNUP) -> VerificationOutcome:
    """Run ``service.confirm`` and report the result instead of raising."""
    try:
        record = service.confirm(email, code, purpose)
    except VerificationError as e:
        log.warning(f"confirm({email}, {purpose}) failed with {e.kind}: {e.detail}")
        return _failure(e)
    except Exception as e:
        log.exception(f"Unexpected error confirming {purpose} code for {email}")
        return _failure(e)
    return VerificationOutcome(success=True, record=record)
