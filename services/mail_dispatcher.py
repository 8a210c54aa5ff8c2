"""
Outbound mail for verification and password-reset codes.

``SmtpMailDispatcher`` refuses to exist with partial transport configuration,
so a misconfigured deployment fails at startup instead of on the first signup.
``ConsoleMailDispatcher`` logs messages instead of sending them and is meant
for local development only.
"""
import os
import smtplib
from dataclasses import dataclass
from functools import lru_cache
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Optional

from services.exceptions import ConfigurationError, DeliveryError, InvalidAddressError
from utils.email_format import is_valid_email
from utils.logger_factory import new_logger

log = new_logger("mail_dispatcher")

DEFAULT_SMTP_PORT = 587
SSL_SMTP_PORT = 465
DEFAULT_SMTP_TIMEOUT = 10.0
DEFAULT_FROM_NAME = "Financial Assistant"


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes", "on")


@dataclass
class MailTransportConfig:
    host: str = ""
    port: Optional[int] = DEFAULT_SMTP_PORT
    username: str = ""
    password: str = ""
    from_address: str = ""
    from_name: str = DEFAULT_FROM_NAME
    use_ssl: bool = False
    timeout: float = DEFAULT_SMTP_TIMEOUT

    @classmethod
    def from_env(cls) -> "MailTransportConfig":
        raw_port = os.environ.get("SMTP_PORT", str(DEFAULT_SMTP_PORT))
        try:
            port = int(raw_port)
        except ValueError:
            port = None
        raw_timeout = os.environ.get("SMTP_TIMEOUT", str(DEFAULT_SMTP_TIMEOUT))
        try:
            timeout = float(raw_timeout)
        except ValueError:
            timeout = DEFAULT_SMTP_TIMEOUT
        return cls(
            host=os.environ.get("SMTP_HOST", ""),
            port=port,
            username=os.environ.get("SMTP_USER", ""),
            password=os.environ.get("SMTP_PASS", ""),
            from_address=os.environ.get("SMTP_FROM_EMAIL", ""),
            from_name=os.environ.get("SMTP_FROM_NAME", DEFAULT_FROM_NAME),
            use_ssl=_env_flag("SMTP_USE_SSL"),
            timeout=timeout,
        )

    def missing_settings(self) -> list:
        missing = []
        if not self.host:
            missing.append("SMTP_HOST")
        if not self.port or self.port <= 0:
            missing.append("SMTP_PORT")
        if not self.username:
            missing.append("SMTP_USER")
        if not self.password:
            missing.append("SMTP_PASS")
        if not self.from_address:
            missing.append("SMTP_FROM_EMAIL")
        return missing


class MailDispatcher:
    """Delivers one message; raises on any failure, never retries."""

    def send(self, to_email: str, subject: str, text: str, html: str) -> None:
        raise NotImplementedError

    @staticmethod
    def check_address(to_email: str) -> None:
        if not is_valid_email(to_email):
            raise InvalidAddressError(f"Invalid recipient email address: {to_email!r}")


class SmtpMailDispatcher(MailDispatcher):
    def __init__(self, config: MailTransportConfig):
        missing = config.missing_settings()
        if missing:
            raise ConfigurationError(
                "SMTP configuration is incomplete. Missing: " + ", ".join(missing)
            )
        if not is_valid_email(config.from_address):
            raise ConfigurationError(f"SMTP_FROM_EMAIL is not a valid address: {config.from_address!r}")
        self.config = config

    def _build_message(self, to_email: str, subject: str, text: str, html: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = formataddr((self.config.from_name, self.config.from_address))
        msg["To"] = to_email
        # Attach text first, then HTML (some clients pick the first alternative)
        msg.attach(MIMEText(text, "plain", "utf-8"))
        msg.attach(MIMEText(html, "html", "utf-8"))
        return msg

    def _connect(self):
        cfg = self.config
        if cfg.use_ssl or cfg.port == SSL_SMTP_PORT:
            return smtplib.SMTP_SSL(cfg.host, cfg.port, timeout=cfg.timeout)
        server = smtplib.SMTP(cfg.host, cfg.port, timeout=cfg.timeout)
        server.starttls()
        return server

    def send(self, to_email: str, subject: str, text: str, html: str) -> None:
        self.check_address(to_email)
        msg = self._build_message(to_email, subject, text, html)
        try:
            with self._connect() as server:
                server.login(self.config.username, self.config.password)
                server.sendmail(self.config.from_address, [to_email], msg.as_string())
        except (smtplib.SMTPException, OSError, UnicodeError) as e:
            # UnicodeError: smtplib refuses non-ASCII addresses without SMTPUTF8
            log.error(f"SMTP delivery to {to_email} via {self.config.host}:{self.config.port} failed: {e}")
            raise DeliveryError(f"Failed to send email: {e}") from e
        log.info(f"Email '{subject}' sent to {to_email}")


class ConsoleMailDispatcher(MailDispatcher):
    def send(self, to_email: str, subject: str, text: str, html: str) -> None:
        self.check_address(to_email)
        log.info(f"[console mail] To: {to_email} | Subject: {subject}\n{text}")


def build_mail_dispatcher(backend: Optional[str] = None) -> MailDispatcher:
    """
    Build the dispatcher selected by ``MAIL_BACKEND`` (``smtp`` or ``console``).

    Raises:
        ConfigurationError: unknown backend or incomplete SMTP settings.
    """
    backend = (backend or os.environ.get("MAIL_BACKEND") or "smtp").strip().lower()
    if backend == "smtp":
        return SmtpMailDispatcher(MailTransportConfig.from_env())
    if backend == "console":
        log.warning("MAIL_BACKEND=console: verification emails will be logged, not delivered")
        return ConsoleMailDispatcher()
    raise ConfigurationError(f"Unknown MAIL_BACKEND: {backend!r}")


@lru_cache(maxsize=1)
def get_mail_dispatcher() -> MailDispatcher:
    """Process-wide dispatcher, built once (at application startup)."""
    return build_mail_dispatcher()
