"""Secure tokens, security logging, auth rate limiting, configuration and meet update sequencing."""

__version__ = "0.1.0"