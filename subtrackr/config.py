"""Configuration management."""

import logging
import os
import sys
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

# Values shipped in the sample .env; treated the same as unset.
_PLACEHOLDER_VALUES = {
    "your_gmail@gmail.com",
    "your_gmail_app_password",
    "your_twilio_account_sid",
    "your_twilio_auth_token",
}


def _env_bool(key: str, default: bool) -> bool:
    return os.getenv(key, str(default)).lower() == "true"


def _is_set(value: Optional[str]) -> bool:
    return bool(value) and value not in _PLACEHOLDER_VALUES


@dataclass
class SmtpConfig:
    """Outgoing email (SMTP) configuration."""
    host: str = "smtp.gmail.com"
    port: int = 587
    username: Optional[str] = None
    password: Optional[str] = None
    from_email: Optional[str] = None
    use_ssl: bool = False  # implicit TLS (port 465); otherwise STARTTLS

    @property
    def is_configured(self) -> bool:
        return _is_set(self.username) and _is_set(self.password)

    @property
    def sender(self) -> str:
        return self.from_email or self.username or "noreply@subtrackr.com"


@dataclass
class TwilioConfig:
    """Twilio SMS configuration."""
    account_sid: Optional[str] = None
    auth_token: Optional[str] = None
    from_number: Optional[str] = None

    @property
    def is_configured(self) -> bool:
        return (
            _is_set(self.account_sid)
            and self.account_sid.startswith("AC")
            and _is_set(self.auth_token)
        )


@dataclass
class SchedulerConfig:
    """Reminder sweep configuration."""
    sweep_days: int = 1           # width of the sweep window, starting today
    delivery_timeout: float = 30  # seconds allowed per channel call
    due_soon_days: int = 7        # default for the ad-hoc "due soon" query


@dataclass
class AppConfig:
    """Complete application configuration."""
    smtp: SmtpConfig = field(default_factory=SmtpConfig)
    twilio: TwilioConfig = field(default_factory=TwilioConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    log_level: str = "INFO"


def load_config() -> AppConfig:
    """
    Load configuration from environment variables.

    Missing channel credentials are not an error here; the affected channel
    reports itself as not configured when a send is attempted.

    Raises:
        ValueError: If a numeric setting cannot be parsed.
    """
    smtp = SmtpConfig(
        host=os.getenv("EMAIL_HOST", "smtp.gmail.com"),
        port=int(os.getenv("EMAIL_PORT", "587")),
        username=os.getenv("EMAIL_USER"),
        password=os.getenv("EMAIL_PASS"),
        from_email=os.getenv("EMAIL_FROM"),
        use_ssl=_env_bool("EMAIL_USE_SSL", False),
    )

    twilio = TwilioConfig(
        account_sid=os.getenv("TWILIO_ACCOUNT_SID"),
        auth_token=os.getenv("TWILIO_AUTH_TOKEN"),
        from_number=os.getenv("TWILIO_PHONE_NUMBER"),
    )

    scheduler = SchedulerConfig(
        sweep_days=int(os.getenv("NOTIFICATION_SWEEP_DAYS", "1")),
        delivery_timeout=float(os.getenv("DELIVERY_TIMEOUT_SECONDS", "30")),
        due_soon_days=int(os.getenv("DUE_SOON_DAYS", "7")),
    )

    return AppConfig(
        smtp=smtp,
        twilio=twilio,
        scheduler=scheduler,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
