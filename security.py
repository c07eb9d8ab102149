# security.py
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from passlib.context import CryptContext

from errors import AuthError

# bcrypt_sha256 pre-hashes, so passwords longer than bcrypt's 72 bytes still count
pwd_context = CryptContext(schemes=["bcrypt_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    """
    Hash a password with a fresh random salt.

    Example:
        >>> hash_password("mypassword123")
        "$bcrypt-sha256$v=2,t=2b,r=12$..."
    """
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(data: dict, secret_key: str, algorithm: str, expires_hours: int) -> str:
    """
    Create a signed JWT that expires after `expires_hours`.

    Example:
        >>> create_access_token({"userId": 1, "role": "user"}, "secret", "HS256", 24)
        "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9..."
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(hours=expires_hours)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, secret_key, algorithm=algorithm)


def decode_access_token(token: str, secret_key: str, algorithm: str) -> dict:
    """Return the token claims; AuthError on bad signature or expiry."""
    try:
        return jwt.decode(token, secret_key, algorithms=[algorithm])
    except JWTError as e:
        raise AuthError("Invalid token") from e
