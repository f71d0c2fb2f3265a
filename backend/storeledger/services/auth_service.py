# Overview: Credential hashing for account passwords and supervisor PINs.

from __future__ import annotations

import bcrypt
from flask import current_app, has_app_context

from ..errors import ValidationError

MIN_PASSWORD_LENGTH = 8
PIN_MIN_LENGTH = 4
PIN_MAX_LENGTH = 8


def _rounds() -> int:
    if has_app_context():
        return int(current_app.config.get("BCRYPT_ROUNDS", 12))
    return 12


def _hash(secret: str) -> str:
    salt = bcrypt.gensalt(rounds=_rounds())
    return bcrypt.hashpw(secret.encode("utf-8"), salt).decode("utf-8")


def is_bcrypt_hash(value: str | None) -> bool:
    """bcrypt hashes start with $2a$, $2b$ or $2y$."""
    return bool(value) and value.startswith("$2")


def validate_password_strength(password: str) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt (cost from BCRYPT_ROUNDS, default 12).

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    return _hash(password)


def hash_pin(pin: str) -> str:
    """Hash a supervisor PIN. PINs are 4 to 8 digits."""
    pin = (pin or "").strip()
    if not pin.isdigit() or not PIN_MIN_LENGTH <= len(pin) <= PIN_MAX_LENGTH:
        raise ValidationError(f"PIN must be {PIN_MIN_LENGTH} to {PIN_MAX_LENGTH} digits")
    return _hash(pin)


def verify_password(password: str, password_hash: str | None) -> bool:
    """
    Verify a secret against a bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() compares in constant time.
    Malformed or empty hashes never match.
    """
    if not password or not is_bcrypt_hash(password_hash):
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False
