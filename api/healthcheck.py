from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type, before_sleep_log
import logging
from database import get_db
from services.exceptions import ConfigurationError
from services.mail_dispatcher import get_mail_dispatcher
from utils.logger_factory import new_logger

health_retry_logger = new_logger("health_check_retry")

router = APIRouter()


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type(OperationalError),
    before_sleep=before_sleep_log(health_retry_logger, logging.WARNING),
    reraise=True,
)
def _ping_database(db: Session) -> bool:
    try:
        row = db.execute(text("SELECT 1 AS health_check")).fetchone()
    except OperationalError:
        db.rollback()
        raise
    return bool(row and row[0] == 1)


@router.get("/health")
def health_check(db: Session = Depends(get_db)):
    """
    Report whether the verification flow can run: the database answers a
    trivial query and the mail transport is fully configured.

    Returns:
        200: both checks pass
        503: at least one check failed (details never include credentials)
    """
    log = new_logger("health_check")

    database = "connected"
    try:
        if not _ping_database(db):
            database = "error"
    except SQLAlchemyError as e:
        log.error(f"Health check database query failed: {e}")
        database = "disconnected"

    mail = "configured"
    try:
        get_mail_dispatcher()
    except ConfigurationError as e:
        log.error(f"Health check found mail transport misconfigured: {e}")
        mail = "misconfigured"

    healthy = database == "connected" and mail == "configured"
    body = {"status": "healthy" if healthy else "unhealthy", "database": database, "mail": mail}
    if healthy:
        log.info("Health check passed")
    return JSONResponse(status_code=200 if healthy else 503, content=body)
