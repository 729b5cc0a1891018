from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from jwt import InvalidTokenError

from ..config import Settings

DEFAULT_TOKEN_LIFETIME = timedelta(minutes=30)


class InvalidAccessToken(ValueError):
    """Token is malformed, expired, signed with another key or has no usable subject."""


@dataclass(frozen=True)
class TokenCodec:
    """Issues and verifies the bearer tokens that identify a booking user."""

    secret: str
    algorithm: str = "HS256"
    lifetime: timedelta = DEFAULT_TOKEN_LIFETIME

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenCodec":
        return cls(secret=settings.auth_secret, algorithm=settings.auth_algorithm)

    def issue(self, user_id: int, *, expires_delta: timedelta | None = None) -> str:
        issued_at = datetime.now(timezone.utc)
        claims = {
            "sub": str(user_id),
            "iat": issued_at,
            "exp": issued_at + (expires_delta if expires_delta is not None else self.lifetime),
        }
        return jwt.encode(claims, self.secret, algorithm=self.algorithm)

    def user_id(self, token: str) -> int:
        try:
            claims = jwt.decode(token, self.secret, algorithms=[self.algorithm], options={"require": ["sub", "exp"]})
        except InvalidTokenError as exc:
            raise InvalidAccessToken(str(exc)) from exc
        subject = claims["sub"]
        if not str(subject).isdigit():
            raise InvalidAccessToken("subject is not a user id")
        return int(subject)


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """``Authorization: Bearer <token>`` -> ``<token>``; anything else -> None."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
