from __future__ import annotations

import logging

from passlib.context import CryptContext
from passlib.exc import UnknownHashError

logger = logging.getLogger(__name__)

# pbkdf2_sha256 for new hashes; bcrypt hashes imported from the old storefront still verify.
_pwd_context = CryptContext(schemes=["pbkdf2_sha256", "bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    try:
        return _pwd_context.verify(password, password_hash)
    except (UnknownHashError, ValueError):
        logger.warning("Unrecognized password hash format")
        return False


def looks_hashed(password: str) -> bool:
    return _pwd_context.identify(password) is not None
