"""Time-based one-time passwords for the portal's second factor."""
from __future__ import annotations

import binascii

import pyotp


def current_code(secret: str) -> str:
    """Return the 6-digit TOTP valid right now for ``secret``."""

    return pyotp.TOTP(secret.replace(" ", "")).now()


def validate_secret(secret: str) -> None:
    if not secret or not secret.strip():
        raise ValueError("TOTP secret is blank")
    try:
        current_code(secret)
    except (binascii.Error, TypeError) as exc:
        raise ValueError("TOTP secret is not valid base32") from exc
