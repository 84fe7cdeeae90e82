from __future__ import annotations

import secrets

import bcrypt

MIN_PASSWORD_LENGTH = 10


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash; treat as a failed login rather than a server error.
        return False


def password_is_strong(password: str) -> bool:
    return len(password) >= MIN_PASSWORD_LENGTH


def new_session_token() -> str:
    return secrets.token_urlsafe(32)
