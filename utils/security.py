"""Password hashing and JWT helpers."""
import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
from jose import JWTError, jwt

import config

logger = logging.getLogger(__name__)


def _prehash(password: str) -> bytes:
    # bcrypt only looks at the first 72 bytes, a hex SHA-256 digest is always 64
    return hashlib.sha256(password.encode("utf-8")).hexdigest().encode("ascii")


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=config.BCRYPT_ROUNDS)
    return bcrypt.hashpw(_prehash(password), salt).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(_prehash(plain_password), hashed_password.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is malformed, rejecting login.")
        return False


def create_access_token(user_id: str, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a signed JWT for the given user.

    Args:
        user_id: String form of the user's ObjectId, stored in the `id` claim.
        expires_delta: Token lifetime; defaults to JWT_EXPIRES_DAYS.

    Returns:
        Encoded JWT string.
    """
    if expires_delta is None:
        expires_delta = timedelta(days=config.JWT_EXPIRES_DAYS)
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode = {"id": user_id, "exp": expire}
    return jwt.encode(to_encode, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[str]:
    """Returns the user id carried by a valid token, or None when the token is bad or expired."""
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except JWTError as e:
        logger.info(f"Rejected access token: {e}")
        return None
    user_id = payload.get("id")
    if not isinstance(user_id, str):
        return None
    return user_id
