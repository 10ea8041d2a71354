"""
Credential service: password hashing and signed access tokens.

Tokens are HS256 JWTs carrying the principal ({sub, email, role}) and expire
after JWT_EXPIRES_DAYS. bcrypt work runs in the threadpool so it never
blocks the event loop.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from functools import lru_cache
from uuid import UUID

import jwt
from loguru import logger
from passlib.context import CryptContext
from starlette.concurrency import run_in_threadpool

from app import settings
from app.errors import AuthenticationError, ErrorCode
from app.policy import CurrentUser
from app.roles import Role

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return str(pwd_context.hash(password))


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return bool(pwd_context.verify(plain_password, hashed_password))
    except ValueError:
        logger.warning("Stored password hash could not be parsed")
        return False


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    """Hash compared against when the email is unknown, so both login failures cost the same."""
    return hash_password("timing-equaliser-not-a-real-password")


async def hash_password_async(password: str) -> str:
    return await run_in_threadpool(hash_password, password)


async def verify_password_async(plain_password: str, hashed_password: str | None) -> bool:
    if hashed_password is None:
        await run_in_threadpool(verify_password, plain_password, _dummy_hash())
        return False
    return await run_in_threadpool(verify_password, plain_password, hashed_password)


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


def issue_token(user_id: UUID, email: str, role: Role, now: datetime | None = None) -> str:
    issued_at = now or datetime.now(UTC)
    claims = {
        "sub": str(user_id),
        "email": email,
        "role": str(role),
        "iat": issued_at,
        "exp": issued_at + timedelta(days=settings.JWT_EXPIRES_DAYS),
    }
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def verify_token(token: str) -> CurrentUser:
    """Decode `token` into a principal or raise AuthenticationError(AUTH_UNAUTHORIZED)."""
    try:
        claims = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            options={"require": ["sub", "exp"]},
        )
    except jwt.PyJWTError as exc:
        raise AuthenticationError(
            "Unauthorized", code=ErrorCode.AUTH_UNAUTHORIZED, details=[str(exc)]
        ) from None

    try:
        return CurrentUser(
            id=UUID(claims["sub"]),
            email=claims.get("email", ""),
            role=Role(claims.get("role")),
        )
    except (ValueError, TypeError):
        raise AuthenticationError(
            "Unauthorized",
            code=ErrorCode.AUTH_UNAUTHORIZED,
            details=["Token claims are malformed"],
        ) from None
