"""Password hashing for Usuario credentials (passlib, bcrypt)."""
from passlib.context import CryptContext

BCRYPT_MAX_BYTES = 72

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__truncate_error=False)


def _bcrypt_input(password: str) -> str:
    """Cut password to bcrypt's byte limit without splitting a UTF-8 sequence."""
    encoded = password.encode("utf-8")
    if len(encoded) <= BCRYPT_MAX_BYTES:
        return password
    return encoded[:BCRYPT_MAX_BYTES].decode("utf-8", errors="ignore")


def hash_password(password: str) -> str:
    return pwd_context.hash(_bcrypt_input(password))


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    return pwd_context.verify(_bcrypt_input(password), password_hash)
