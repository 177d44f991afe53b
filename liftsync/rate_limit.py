"""Rate limiting of failed authentication attempts per client address."""

from __future__ import annotations

import ipaddress
import threading
import time
from dataclasses import dataclass
from datetime import timedelta

DEFAULT_MAX_ATTEMPTS = 5
"""Failed attempts allowed before an address is locked out."""

DEFAULT_LOCKOUT_DURATION = 5 * 60.0
"""Base lockout duration in seconds (5 minutes)."""

_MAX_BACKOFF_EXPONENT = 6
_ENTRY_RETENTION = 24 * 60 * 60.0

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address


@dataclass
class _Entry:
    failed_attempts: int
    last_failure: float
    is_locked_out: bool = False
    lockout_expiry: float | None = None


def _address(ip: str | IPAddress) -> IPAddress:
    return ipaddress.ip_address(ip)


class AuthRateLimiter:
    """Locks out addresses after repeated failures, with exponential backoff."""

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        lockout_duration: float | timedelta = DEFAULT_LOCKOUT_DURATION,
    ) -> None:
        if isinstance(lockout_duration, timedelta):
            lockout_duration = lockout_duration.total_seconds()
        self.max_attempts = max_attempts
        self.lockout_duration = float(lockout_duration)
        self._attempts: dict[IPAddress, _Entry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._attempts)

    def __contains__(self, ip: object) -> bool:
        try:
            address = _address(ip)  # type: ignore[arg-type]
        except ValueError:
            return False
        with self._lock:
            return address in self._attempts

    def record_failed_attempt(self, ip: str | IPAddress) -> None:
        """Count a failure for ``ip`` and lock it out once the limit is reached."""
        address = _address(ip)
        now = time.monotonic()
        with self._lock:
            entry = self._attempts.setdefault(address, _Entry(0, now))

            if entry.lockout_expiry is not None and now > entry.lockout_expiry:
                entry.is_locked_out = False
                entry.failed_attempts = 0
                entry.lockout_expiry = None

            entry.failed_attempts += 1
            entry.last_failure = now

            if entry.failed_attempts < self.max_attempts:
                return

            entry.is_locked_out = True
            over = max(entry.failed_attempts - self.max_attempts, 0)
            backoff = 2 ** min(over, _MAX_BACKOFF_EXPONENT)
            lockout = self.lockout_duration * backoff
            entry.lockout_expiry = now + lockout
            attempts = entry.failed_attempts

        if over > 0:
            print(
                f"SECURITY WARNING: IP {address} locked out for {lockout:g} seconds "
                f"after {attempts} failed attempts"
            )
        else:
            print(f"IP {address} locked out for {lockout:g} seconds")

    def record_success(self, ip: str | IPAddress) -> None:
        """Forget all failures recorded for ``ip``."""
        address = _address(ip)
        with self._lock:
            self._attempts.pop(address, None)

    def check_rate_limit(self, ip: str | IPAddress) -> bool:
        """Tell whether ``ip`` may attempt to authenticate now."""
        address = _address(ip)
        with self._lock:
            entry = self._attempts.get(address)
            if (
                entry is not None
                and entry.is_locked_out
                and entry.lockout_expiry is not None
                and time.monotonic() < entry.lockout_expiry
            ):
                return False
        return True

    def cleanup(self) -> None:
        """Drop expired lockouts and failures older than a day."""
        now = time.monotonic()

        def keep(entry: _Entry) -> bool:
            if entry.is_locked_out and entry.lockout_expiry is not None:
                return now < entry.lockout_expiry
            return now - entry.last_failure < _ENTRY_RETENTION

        with self._lock:
            self._attempts = {ip: e for ip, e in self._attempts.items() if keep(e)}