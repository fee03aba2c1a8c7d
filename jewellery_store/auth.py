import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from . import errors
from .config import ACCESS_TOKEN_EXPIRE_MINUTES, ALGORITHM, SECRET_KEY

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"

# bcrypt hashes from older deployments still verify; new hashes are argon2
pwd_context = CryptContext(schemes=["argon2", "bcrypt"], deprecated="auto")


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


@dataclass(frozen=True)
class TokenClaims:
    user_id: int
    is_admin: bool
    issued_at: datetime
    expires_at: datetime

    def has_role(self, role: str) -> bool:
        if role == ADMIN_ROLE:
            return self.is_admin
        return False


def create_access_token(user_id: int, is_admin: bool, now: Optional[datetime] = None) -> tuple[str, datetime]:
    issued_at = now or datetime.now(timezone.utc)
    expire = issued_at + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode = {
        "sub": str(user_id),
        "is_admin": bool(is_admin),
        "iat": issued_at,
        "exp": expire,
    }
    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt, expire


def authenticate(token: str) -> TokenClaims:
    """Decode a bearer token into its claims.

    Raises InvalidToken when the token is malformed, expired, signed with
    another key, or lacks the identity claims.
    """
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        raise errors.InvalidToken() from e

    try:
        user_id = int(payload["sub"])
        issued_at = datetime.fromtimestamp(int(payload["iat"]), tz=timezone.utc)
        expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
    except (KeyError, TypeError, ValueError) as e:
        raise errors.InvalidToken() from e

    return TokenClaims(
        user_id=user_id,
        is_admin=payload.get("is_admin") is True,
        issued_at=issued_at,
        expires_at=expires_at,
    )


def authorize(claims: TokenClaims, role: str) -> TokenClaims:
    if not claims.has_role(role):
        logger.info("user %s denied: missing role %r", claims.user_id, role)
        raise errors.Forbidden()
    return claims


bearer_scheme = HTTPBearer(auto_error=False)


def get_current_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> TokenClaims:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise errors.InvalidToken("Not authenticated")
    return authenticate(credentials.credentials)


def require_role(role: str):
    """Build a dependency that lets through only callers holding ``role``."""

    def _dependency(claims: TokenClaims = Depends(get_current_claims)) -> TokenClaims:
        return authorize(claims, role)

    return _dependency


get_current_admin = require_role(ADMIN_ROLE)
