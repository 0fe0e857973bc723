# app/core/config.py
import os

from dotenv import load_dotenv

load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_offsets(raw: str) -> tuple[int, ...]:
    offsets = set()
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        value = int(part)
        if value <= 0:
            raise ValueError(f"Reminder offsets must be positive, got {value}")
        offsets.add(value)
    return tuple(sorted(offsets, reverse=True))


APP_ENV = os.getenv("APP_ENV", "development")

# Database
MONGO_URI = os.getenv("MONGO_URI")
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "advisory_portal")

# Consultant sessions
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
CONSULTANT_ROLES = ["consultant", "admin"]

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]

# Links placed in client emails point here
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/")

# The firm's local calendar; appointment dates carry no time zone
PORTAL_TIMEZONE = os.getenv("PORTAL_TIMEZONE", "Indian/Reunion")

# Reminder scheduler
REMINDER_OFFSETS = _parse_offsets(os.getenv("REMINDER_OFFSETS", "20,14,7,3,1"))
REMINDER_SCHEDULER_ENABLED = _get_bool(os.getenv("REMINDER_SCHEDULER_ENABLED"), default=True)
REMINDER_RUN_HOUR = int(os.getenv("REMINDER_RUN_HOUR", "8"))

# Outgoing mail
EMAIL_API_URL = os.getenv("EMAIL_API_URL", "")
EMAIL_API_KEY = os.getenv("EMAIL_API_KEY", "")
EMAIL_FROM = os.getenv("EMAIL_FROM", "Advisory Portal <noreply@example.com>")
EMAIL_TIMEOUT_SECONDS = float(os.getenv("EMAIL_TIMEOUT_SECONDS", "10"))
MAIL_MAX_ATTEMPTS = int(os.getenv("MAIL_MAX_ATTEMPTS", "3"))
MAIL_DISPATCH_INTERVAL_SECONDS = int(os.getenv("MAIL_DISPATCH_INTERVAL_SECONDS", "30"))
# A message left in "sending" this long is assumed abandoned and claimed again
MAIL_SENDING_TIMEOUT_SECONDS = int(os.getenv("MAIL_SENDING_TIMEOUT_SECONDS", "600"))
DEFAULT_CONSULTANT_EMAIL = os.getenv("DEFAULT_CONSULTANT_EMAIL", "admin@example.com")
FIRM_NAME = os.getenv("FIRM_NAME", "Advisory Portal")


def validate_runtime_config() -> None:
    if not MONGO_URI:
        raise ValueError("MONGO_URI is not set in the environment")
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if not 0 <= REMINDER_RUN_HOUR <= 23:
        raise ValueError("REMINDER_RUN_HOUR must be between 0 and 23")
