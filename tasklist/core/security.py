import jwt
import bcrypt
from datetime import datetime, timedelta, timezone
from typing import Optional


def hash_password(password: str) -> str:
    """Hash a password using bcrypt"""
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt())
    return hashed.decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash"""
    try:
        return bcrypt.checkpw(
            plain_password.encode("utf-8"), hashed_password.encode("utf-8")
        )
    except ValueError:
        # malformed stored hash
        return False


class TokenCodec:
    """Issues and verifies HS256 bearer tokens whose subject is the user id."""

    def __init__(self, secret: str, algorithm: str = "HS256", expires_days: int = 7):
        self.secret = secret
        self.algorithm = algorithm
        self.expires = timedelta(days=expires_days)

    def issue(self, user_id: str, email: str) -> str:
        now = datetime.now(timezone.utc)
        payload = {"sub": user_id, "email": email, "iat": now, "exp": now + self.expires}
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> Optional[dict]:
        """
        Verify JWT token and return payload

        Args:
            token: JWT token string

        Returns:
            Decoded payload if valid and unexpired, None otherwise
        """
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"require": ["sub", "exp"]},
            )
        except jwt.InvalidTokenError:
            return None
        if not isinstance(payload.get("sub"), str) or not payload["sub"]:
            return None
        return payload
