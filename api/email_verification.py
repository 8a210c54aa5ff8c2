from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from database import get_db
from models.email_verification import PURPOSE_RESET, PURPOSE_SIGNUP
from schemas.email_verification import (
    ErrorResponse,
    SendCodeRequest,
    SendCodeResponse,
    VerifyCodeRequest,
    VerifyCodeResponse,
)
from services.mail_dispatcher import MailDispatcher, get_mail_dispatcher
from services.verification_service import (
    VerificationOutcome,
    VerificationService,
    confirm_verification,
    issue_verification,
)
from services.verification_store import VerificationStore
from utils.logger_factory import new_logger

router = APIRouter()

ERROR_RESPONSES = {400: {"model": ErrorResponse}, 405: {"model": ErrorResponse}, 500: {"model": ErrorResponse}}


def get_verification_service(
    db: Session = Depends(get_db),
    dispatcher: MailDispatcher = Depends(get_mail_dispatcher),
) -> VerificationService:
    return VerificationService(VerificationStore(db), dispatcher)


def _error_response(outcome: VerificationOutcome) -> JSONResponse:
    body = ErrorResponse(error=outcome.message, kind=outcome.kind, details=outcome.details)
    return JSONResponse(status_code=outcome.status_code, content=body.model_dump(exclude_none=True))


def _send_code(payload: SendCodeRequest, service: VerificationService, purpose: str, log):
    log.info(f"Issuing {purpose} code for {payload.email}")
    outcome = issue_verification(service, payload.email, payload.full_name, purpose)
    if not outcome.success:
        return _error_response(outcome)
    message = "Verification email sent successfully" if purpose == PURPOSE_SIGNUP else "Password reset code sent successfully"
    return SendCodeResponse(message=message, expires_at=outcome.expires_at)


def _verify_code(payload: VerifyCodeRequest, service: VerificationService, purpose: str, log):
    log.info(f"Confirming {purpose} code for {payload.email}")
    outcome = confirm_verification(service, payload.email, payload.code, purpose)
    if not outcome.success:
        return _error_response(outcome)
    record = outcome.record
    return VerifyCodeResponse(email=record.email, purpose=record.purpose, verified_at=record.verified_at)


@router.post("/send_verification_email/", response_model=SendCodeResponse, responses=ERROR_RESPONSES)
def send_verification_email(payload: SendCodeRequest, service: VerificationService = Depends(get_verification_service)):
    return _send_code(payload, service, PURPOSE_SIGNUP, new_logger("send_verification_email"))


@router.post("/verify_code/", response_model=VerifyCodeResponse, responses=ERROR_RESPONSES)
def verify_code(payload: VerifyCodeRequest, service: VerificationService = Depends(get_verification_service)):
    return _verify_code(payload, service, PURPOSE_SIGNUP, new_logger("verify_code"))


@router.post("/send_password_reset_code/", response_model=SendCodeResponse, responses=ERROR_RESPONSES)
def send_password_reset_code(payload: SendCodeRequest, service: VerificationService = Depends(get_verification_service)):
    return _send_code(payload, service, PURPOSE_RESET, new_logger("send_password_reset_code"))


@router.post("/verify_reset_code/", response_model=VerifyCodeResponse, responses=ERROR_RESPONSES)
def verify_reset_code(payload: VerifyCodeRequest, service: VerificationService = Depends(get_verification_service)):
    return _verify_code(payload, service, PURPOSE_RESET, new_logger("verify_reset_code"))
