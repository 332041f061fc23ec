import asyncio
import re

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from tasklist.core.errors import (
    AuthenticationError,
    ConflictError,
    InternalError,
    ValidationError,
)
from tasklist.core.security import TokenCodec, hash_password, verify_password
from tasklist.models import AuthResult, User, UserRead

import logging

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 6


def _validate_credentials(email, password) -> str:
    if (
        not isinstance(email, str)
        or not EMAIL_RE.match(email)
        or not isinstance(password, str)
        or len(password) < MIN_PASSWORD_LENGTH
    ):
        raise ValidationError(
            f"Invalid email or password (min {MIN_PASSWORD_LENGTH} chars)"
        )
    return email.lower()


class IdentityService:
    """
    Accounts and bearer tokens.

    resolve() is the only piece the task core depends on: it turns an
    Authorization header into a user id or raises AuthenticationError.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        tokens: TokenCodec,
        timeout: float = 5,
    ):
        self._session_factory = session_factory
        self.tokens = tokens
        self.timeout = timeout

    def resolve(self, authorization: str | None) -> str:
        if not authorization:
            raise AuthenticationError("Missing auth token")

        parts = authorization.split()
        if len(parts) != 2 or parts[0].lower() != "bearer":
            raise AuthenticationError("Invalid auth format")

        payload = self.tokens.verify(parts[1])
        if payload is None:
            raise AuthenticationError("Invalid/expired token")
        return payload["sub"]

    async def signup(self, email: str, password: str) -> AuthResult:
        email = _validate_credentials(email, password)
        # hashing runs off the event loop
        password_hash = await asyncio.to_thread(hash_password, password)
        user = User(email=email, password_hash=password_hash)

        async def insert():
            async with self._session_factory() as session:
                session.add(user)
                await session.commit()

        try:
            await asyncio.wait_for(insert(), timeout=self.timeout)
        except IntegrityError:
            raise ConflictError("Email already in use") from None
        except (asyncio.TimeoutError, SQLAlchemyError) as e:
            logger.error(f"Signup failed: {e!r}")
            raise InternalError("Storage error") from e

        logger.info(f"User {user.id} signed up")
        return self._auth_result(user.id, email)

    async def login(self, email: str, password: str) -> AuthResult:
        email = _validate_credentials(email, password)

        async def load():
            async with self._session_factory() as session:
                result = await session.exec(select(User).where(User.email == email))
                return result.first()

        try:
            user = await asyncio.wait_for(load(), timeout=self.timeout)
        except (asyncio.TimeoutError, SQLAlchemyError) as e:
            logger.error(f"Login lookup failed: {e!r}")
            raise InternalError("Storage error") from e

        if user is None:
            raise AuthenticationError("Invalid credentials")
        ok = await asyncio.to_thread(verify_password, password, user.password_hash)
        if not ok:
            raise AuthenticationError("Invalid credentials")
        return self._auth_result(user.id, email)

    def _auth_result(self, user_id: str, email: str) -> AuthResult:
        token = self.tokens.issue(user_id, email)
        return AuthResult(token=token, user=UserRead(id=user_id, email=email))
