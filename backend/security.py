import secrets

import bcrypt

from errors import ValidationError

BCRYPT_ROUNDS = 10
BCRYPT_MAX_PASSWORD_BYTES = 72
OTP_MIN = 100000
OTP_MAX = 999999


def hash_password(password: str) -> str:
    """Hash with a fresh bcrypt salt; the salt and cost live inside the digest.

    bcrypt only reads the first 72 bytes, so longer passwords are rejected
    instead of being silently truncated.
    """
    encoded = password.encode("utf-8")
    if len(encoded) > BCRYPT_MAX_PASSWORD_BYTES:
        raise ValidationError(
            f"Password must be at most {BCRYPT_MAX_PASSWORD_BYTES} bytes long"
        )
    hashed = bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=BCRYPT_ROUNDS))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash) -> bool:
    if not password_hash:
        return False
    if isinstance(password_hash, str):
        password_hash = password_hash.encode("utf-8")
    encoded = password.encode("utf-8")
    if len(encoded) > BCRYPT_MAX_PASSWORD_BYTES:
        return False
    try:
        return bcrypt.checkpw(encoded, password_hash)
    except (ValueError, TypeError):
        return False


def generate_otp_code() -> str:
    # Range starts at 100000, so every code is exactly six digits.
    return str(OTP_MIN + secrets.randbelow(OTP_MAX - OTP_MIN + 1))
