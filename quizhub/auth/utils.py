import re

from flask import current_app
from passlib.hash import bcrypt

from quizhub.errors import ValidationError


EMAIL_REGEX = re.compile(r"^[^@]+@[^@]+\.[^@]+$")
USERNAME_REGEX = re.compile(r"^[A-Za-z0-9_.-]{3,50}$")


def _truncate_password(plain_password: str) -> str:
    """Helper to consistently truncate password to its first 72 UTF-8 bytes."""
    # bcrypt only looks at 72 bytes; drop any partial multi-byte character at the cut.
    password_bytes = plain_password.encode('utf-8')[:72]
    return password_bytes.decode('utf-8', errors='ignore')


def hash_password(plain_password: str) -> str:
    """
    Hash password using bcrypt. It is truncated to the first 72 bytes
    of its UTF-8 encoding before hashing.
    """
    truncated = _truncate_password(plain_password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    return bcrypt.using(rounds=rounds).hash(truncated)


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Verify a password against a hash, using the same truncation as hash_password."""
    truncated = _truncate_password(plain_password)
    return bcrypt.verify(truncated, password_hash)


def is_valid_email(email: str) -> bool:
    return bool(email and EMAIL_REGEX.match(email))


def is_valid_username(username: str) -> bool:
    return bool(username and USERNAME_REGEX.match(username))


def validate_password(password: str) -> tuple[bool, str | None]:
    """
    Basic server-side password validation.
    Returns (is_valid, error_message).
    """
    min_length = current_app.config.get("MIN_PASSWORD_LENGTH", 6)
    if len(password) < min_length:
        return False, f"Password must be at least {min_length} characters long"
    return True, None


def require_fields(data: dict, fields: list[str]) -> None:
    """Raise ValidationError listing every missing or blank field."""
    missing = [f for f in fields if data.get(f) is None or str(data.get(f)).strip() == ""]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
