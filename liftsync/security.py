"""Security event logging and timing-safe string comparison."""

import hmac
from datetime import datetime
from enum import Enum


class SecurityEvent(Enum):
    """Kinds of security-relevant events recorded by the session layer."""

    SESSION_CREATED = "SessionCreated"
    SESSION_VALIDATED = "SessionValidated"
    SESSION_EXPIRED = "SessionExpired"
    SESSION_REMOVED = "SessionRemoved"
    SESSION_ROTATED = "SessionRotated"
    INVALID_SESSION_ACCESS = "InvalidSessionAccess"
    CSRF_VALIDATION_FAILED = "CsrfValidationFailed"
    CSRF_VALIDATION_SUCCESS = "CsrfValidationSuccess"
    SESSION_LOADED = "SessionLoaded"
    SESSION_SAVED = "SessionSaved"
    SESSION_ENCRYPTION_FAILED = "SessionEncryptionFailed"
    SESSION_DECRYPTION_FAILED = "SessionDecryptionFailed"

    def __str__(self) -> str:
        return self.value


def _timestamp(now: datetime) -> str:
    return f"{now:%Y-%m-%d %H:%M:%S}.{now.microsecond // 1000:03d}"


def log_security_event(event: SecurityEvent, details: str) -> str:
    """Print a timestamped security log line and return it."""
    line = f"[SECURITY] [{_timestamp(datetime.now())}] [{event}] {details}"
    print(line)
    return line


def constant_time_compare(a: str, b: str) -> bool:
    """Compare two strings in time independent of where they differ."""
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))