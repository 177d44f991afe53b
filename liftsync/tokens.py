"""Cryptographically secure token generation for sessions and CSRF protection."""

import secrets

DEFAULT_TOKEN_BYTES = 32
"""Default token size in bytes (256 bits of entropy)."""


def generate_secure_token_with_size(size: int) -> str:
    """Return ``size`` random bytes as URL-safe base64 without padding."""
    if size < 0:
        raise ValueError(f"token size must not be negative, got {size}")
    return secrets.token_urlsafe(size)


def generate_secure_token() -> str:
    """Return a URL-safe token carrying the default amount of entropy."""
    return generate_secure_token_with_size(DEFAULT_TOKEN_BYTES)