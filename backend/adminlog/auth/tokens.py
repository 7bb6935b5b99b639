"""
Signed actor tokens.

HS256 JWTs carrying the actor identity the audit trail denormalizes at
write time. The same token authenticates HTTP requests (Authorization
header) and WebSocket connections (handshake query parameter or header).

Claims:
- sub: actor id
- name, email, role
- iat, exp
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from pydantic import BaseModel

from adminlog.config.settings import AppSettings

logger = logging.getLogger(__name__)


class TokenError(Exception):
    """Base exception for actor token errors."""
    pass


class TokenExpiredError(TokenError):
    """Token has expired."""
    pass


class TokenValidationError(TokenError):
    """Token is missing, malformed or signed with the wrong key."""
    pass


class TokenPayload(BaseModel):
    """Decoded token claims."""
    sub: str
    name: Optional[str] = None
    email: Optional[str] = None
    role: str = "user"
    iat: int
    exp: int


@dataclass(frozen=True)
class Actor:
    """Authenticated identity that performed an action."""

    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    role: str = "user"

    def has_role(self, *roles: str) -> bool:
        wanted = {r.lower() for r in roles}
        return (self.role or "").lower() in wanted


class TokenService:
    """Issues and verifies actor tokens."""

    def __init__(self, secret: str, algorithm: str = "HS256", lifetime_minutes: int = 1440):
        if not secret:
            raise ValueError("JWT_SECRET environment variable is required")
        self.secret = secret
        self.algorithm = algorithm
        self.lifetime_minutes = lifetime_minutes

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "TokenService":
        return cls(
            secret=settings.jwt_secret or "",
            algorithm=settings.jwt_algorithm,
            lifetime_minutes=settings.jwt_lifetime_minutes,
        )

    def issue(self, actor: Actor, lifetime_minutes: Optional[int] = None) -> str:
        """Sign a token for the given actor."""
        now = datetime.now(timezone.utc)
        exp = now + timedelta(minutes=lifetime_minutes or self.lifetime_minutes)
        payload = {
            "sub": actor.id,
            "name": actor.name,
            "email": actor.email,
            "role": actor.role,
            "iat": int(now.timestamp()),
            "exp": int(exp.timestamp()),
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify(self, token: Optional[str]) -> Actor:
        """
        Decode a token into an Actor.

        Raises:
            TokenExpiredError: If the token has expired
            TokenValidationError: If the token is missing or invalid
        """
        if not token:
            raise TokenValidationError("Token missing")
        try:
            claims = jwt.decode(token, self.secret, algorithms=[self.algorithm])
            payload = TokenPayload(**claims)
        except jwt.ExpiredSignatureError:
            raise TokenExpiredError("Token has expired")
        except jwt.InvalidTokenError as e:
            raise TokenValidationError(f"Invalid token: {str(e)}")
        except ValueError as e:
            raise TokenValidationError(f"Invalid token claims: {str(e)}")

        return Actor(
            id=payload.sub,
            name=payload.name,
            email=payload.email,
            role=payload.role,
        )


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token from an `Authorization: Bearer <token>` header."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
