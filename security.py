# security.py
import secrets
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt

from config import get_settings

TOKEN_LENGTH = 6


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=get_settings().bcrypt_rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def check_password(password: str, hashed_password: str) -> bool:
    """Compare a plaintext password against a stored bcrypt hash.

    A missing or malformed hash counts as a mismatch rather than an error.
    """
    if not password or not hashed_password:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        return False


def generate_token() -> str:
    return f"{secrets.randbelow(10 ** TOKEN_LENGTH):0{TOKEN_LENGTH}d}"


def generate_jwt(subject_id: int) -> str:
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(subject_id),
        "id": subject_id,
        "iat": now,
        "exp": now + timedelta(hours=settings.jwt_expire_hours),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_jwt(token: str) -> dict:
    # Raises jwt.ExpiredSignatureError, jwt.InvalidSignatureError or another
    # jwt.InvalidTokenError
    settings = get_settings()
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
        options={"require": ["sub", "exp"]},
    )
