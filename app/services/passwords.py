import re

from passlib.context import CryptContext

from app.services.errors import WeakPassword

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

PASSWORD_MIN_LENGTH = 8
PASSWORD_SYMBOLS = "@$!%*?&"

_RULES = (
    (re.compile(r"[a-z]"), "Password must contain at least one lowercase letter"),
    (re.compile(r"[A-Z]"), "Password must contain at least one uppercase letter"),
    (re.compile(r"\d"), "Password must contain at least one number"),
    (re.compile(f"[{re.escape(PASSWORD_SYMBOLS)}]"), "Password must contain at least one special character"),
)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password_hash(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def validate_password_strength(password: str) -> None:
    """Raise WeakPassword with the first rule the password breaks."""
    if len(password) < PASSWORD_MIN_LENGTH:
        raise WeakPassword(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long")
    for pattern, message in _RULES:
        if not pattern.search(password):
            raise WeakPassword(message)
