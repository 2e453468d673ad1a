import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import jwt
from passlib.context import CryptContext

from app.core.config import Settings

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


class InvalidToken(Exception):
    """Signature does not validate or the token is malformed."""


class ExpiredToken(Exception):
    """Token was valid but its expiration instant has passed."""


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    return pwd_context.verify(plain_password, password_hash)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenCodec:
    """Issues and verifies signed bearer tokens carrying an account id."""

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        ttl: timedelta = timedelta(days=7),
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._secret = secret
        self._algorithm = algorithm
        self._ttl = ttl
        self._clock = clock or _utcnow

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenCodec":
        return cls(
            secret=settings.JWT_SECRET_KEY,
            algorithm=settings.JWT_ALGORITHM,
            ttl=timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES),
        )

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def issue(self, account_id: str) -> str:
        issued_at = self._clock()
        payload = {
            "sub": account_id,
            "iat": issued_at,
            "exp": issued_at + self._ttl,
            # iat has second resolution; jti keeps tokens issued in the same second distinct
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify(self, token: str) -> str:
        """
        Expiry is checked against the codec's clock, the same one used by
        issue(), so a codec built with a fixed clock agrees with itself.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["exp", "sub"], "verify_exp": False, "verify_iat": False},
            )
        except jwt.InvalidTokenError as e:
            raise InvalidToken(str(e)) from e

        expires_at = payload["exp"]
        if not isinstance(expires_at, (int, float)):
            raise InvalidToken("Expiration Time claim (exp) must be a number")
        if self._clock().timestamp() >= expires_at:
            raise ExpiredToken("Signature has expired")

        account_id = payload.get("sub")
        if not isinstance(account_id, str) or not account_id:
            raise InvalidToken("Token subject is missing")
        return account_id
