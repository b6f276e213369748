import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from app.config import settings

LOGS_DIR = Path("logs")

# Never written to the security log, whatever the caller passes
REDACTED_FIELDS = {"password", "token", "session_token", "csrf_token", "cookie"}


def _configure(name: str, handler: logging.Handler, fmt: str) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper()))

    # Re-imports must not stack handlers
    if logger.handlers:
        return logger

    handler.setFormatter(logging.Formatter(fmt=fmt, datefmt="%Y-%m-%d %H:%M:%S"))
    logger.addHandler(handler)
    return logger


def setup_request_logger() -> logging.Logger:
    """
    One line per API request, written to logs/api_requests.log.

    The file rotates at LOG_MAX_SIZE_MB and keeps LOG_MAX_FILES backups.
    """
    LOGS_DIR.mkdir(exist_ok=True)
    handler = RotatingFileHandler(
        filename=LOGS_DIR / "api_requests.log",
        maxBytes=settings.LOG_MAX_SIZE_MB * 1024 * 1024,
        backupCount=settings.LOG_MAX_FILES,
        encoding="utf-8",
    )
    return _configure("api_requests", handler, "[%(asctime)s.%(msecs)03d] %(message)s")


def setup_app_logger() -> logging.Logger:
    """Errors, workflow transitions and security events, to stdout."""
    return _configure(
        "app_errors", logging.StreamHandler(), "[%(asctime)s] [%(levelname)s] %(message)s"
    )


def format_security_event(event: str, **fields) -> str:
    """
    Render a security event as ``security event=<name> key=value ...``.

    Fields are sorted so lines grep consistently. Credential-bearing fields
    are masked and None values dropped.
    """
    parts = [f"security event={event}"]
    for key in sorted(fields):
        value = fields[key]
        if value is None:
            continue
        if key in REDACTED_FIELDS:
            value = "***"
        parts.append(f"{key}={value}")
    return " ".join(parts)


def log_security_event(event: str, level: int = logging.WARNING, **fields) -> None:
    """Log a failed login, lockout, CSRF rejection or rate-limit hit."""
    app_logger.log(level, format_security_event(event, **fields))


api_logger = setup_request_logger()
app_logger = setup_app_logger()
