from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import pydantic
from jose import JWTError, jwt

from core.errors import InvalidCredentialError, MissingCredentialError
from schemas.user import Identity

TOKEN_COOKIE = "token"

# bcrypt only looks at the first 72 bytes of a password
_BCRYPT_MAX_BYTES = 72


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(_password_bytes(plain_password), password_hash.encode("utf-8"))
    except ValueError:
        # malformed stored hash
        return False


def create_access_token(
    identity: Identity,
    secret_key: str,
    algorithm: str = "HS256",
    expires_delta: timedelta = timedelta(days=7),
) -> str:
    to_encode = identity.model_dump()
    to_encode["exp"] = datetime.now(timezone.utc) + expires_delta
    return jwt.encode(to_encode, secret_key, algorithm=algorithm)


def extract_credential(authorization: Optional[str], cookie_token: Optional[str]) -> Optional[str]:
    """
    Pull the bearer token out of an Authorization header, falling back to
    the token cookie. The header wins when both are present.
    """
    if authorization:
        parts = authorization.split(" ")
        if len(parts) > 1 and parts[1]:
            return parts[1]
    return cookie_token or None


def verify(credential: Optional[str], secret_key: str, algorithm: str = "HS256") -> Identity:
    """
    Check the token signature and expiry and return the identity it carries.

    Raises MissingCredentialError when no token was supplied and
    InvalidCredentialError for anything that fails verification.
    """
    if not credential:
        raise MissingCredentialError()

    try:
        payload = jwt.decode(credential, secret_key, algorithms=[algorithm])
    except JWTError:
        raise InvalidCredentialError()

    try:
        return Identity(
            id=payload["id"],
            username=payload["username"],
            email=payload["email"],
        )
    except (KeyError, pydantic.ValidationError):
        raise InvalidCredentialError()
