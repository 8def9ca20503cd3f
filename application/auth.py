"""Issuing and verifying signed session tokens for the static dev account."""
from __future__ import annotations

import hmac
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt

from domain.errors import InvalidTokenError, UnauthorizedError
from infrastructure.logging import StructuredLogger, get_logger
from infrastructure.metrics import metrics


@dataclass(frozen=True)
class TokenPayload:
    username: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_at: datetime
    expires_in_ms: int


class TokenService:
    def __init__(
        self,
        secret: str,
        expires_in: timedelta,
        username: str,
        password: str,
        algorithm: str = "HS256",
        logger: Optional[StructuredLogger] = None,
    ):
        self.secret = secret
        self.expires_in = expires_in
        self.algorithm = algorithm
        self._username = username
        self._password = password
        self.logger = logger or get_logger("order-service")

    @classmethod
    def from_settings(cls, settings, logger: Optional[StructuredLogger] = None) -> "TokenService":
        return cls(
            secret=settings.jwt_secret,
            expires_in=settings.jwt_expires_in,
            username=settings.dev_auth_user,
            password=settings.dev_auth_pass,
            algorithm=settings.jwt_algorithm,
            logger=logger,
        )

    def _credentials_match(self, username: str, password: str) -> bool:
        user_ok = hmac.compare_digest(username.encode(), self._username.encode())
        pass_ok = hmac.compare_digest(password.encode(), self._password.encode())
        return user_ok and pass_ok

    def authenticate(self, username: str, password: str) -> IssuedToken:
        """Exchange the configured credentials for a signed token.

        The returned expiry is read back from the token's own ``exp`` claim so
        any cookie built from it expires exactly when verification stops
        accepting the token.
        """
        if not self._credentials_match(username, password):
            metrics.increment("auth_failures_total")
            self.logger.warning("auth.login_failed", username=username)
            raise UnauthorizedError("Invalid credentials")

        now = datetime.now(timezone.utc)
        # JWT times are whole seconds; exp rounds up so it never precedes now
        exp = math.ceil((now + self.expires_in).timestamp())
        token = jwt.encode(
            {"username": username, "iat": int(now.timestamp()), "exp": exp},
            self.secret,
            algorithm=self.algorithm,
        )
        payload = self.verify(token)
        expires_in_ms = max(0, int((payload.expires_at - now).total_seconds() * 1000))
        self.logger.info("auth.login_succeeded", username=username)
        return IssuedToken(token=token, expires_at=payload.expires_at, expires_in_ms=expires_in_ms)

    def verify(self, token: str) -> TokenPayload:
        """Decode ``token``; every failure collapses into ``InvalidTokenError``."""
        try:
            claims: dict[str, Any] = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "iat"]},
            )
        except jwt.PyJWTError as exc:
            metrics.increment("auth_failures_total")
            raise InvalidTokenError() from exc

        username = claims.get("username")
        if not isinstance(username, str) or not username:
            metrics.increment("auth_failures_total")
            raise InvalidTokenError()

        return TokenPayload(
            username=username,
            issued_at=datetime.fromtimestamp(claims["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
        )
