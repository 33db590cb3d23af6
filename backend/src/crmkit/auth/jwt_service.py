"""JWT token generation and validation service."""

import time

import jwt

from crmkit.auth.principal import Principal
from crmkit.errors import AuthenticationError


class TokenExpiredError(AuthenticationError):
    """Raised when a token has expired."""


class InvalidTokenError(AuthenticationError):
    """Raised when a token is invalid or malformed."""


class JWTService:
    """Issues and validates access tokens.

    Uses HS256 algorithm with a shared secret key.
    """

    ACCESS_TOKEN_TTL = 15 * 60  # 15 minutes

    def __init__(self, secret_key: str, algorithm: str = "HS256"):
        self._secret_key = secret_key
        self._algorithm = algorithm

    def generate_access_token(
        self,
        user_id: str,
        tenant_id: str | None = None,
        role: str | None = None,
        ttl: int | None = None,
    ) -> str:
        now = int(time.time())
        claims = {
            "sub": user_id,
            "iat": now,
            "exp": now + (ttl if ttl is not None else self.ACCESS_TOKEN_TTL),
            "type": "access",
        }
        if tenant_id:
            claims["tenant_id"] = tenant_id
        if role:
            claims["role"] = role

        return jwt.encode(claims, self._secret_key, algorithm=self._algorithm)

    def decode_token(self, token: str) -> Principal:
        """Decode and validate an access token.

        Raises:
            TokenExpiredError: If the token has expired
            InvalidTokenError: If the token is invalid, malformed or not an access token
        """
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpiredError("Token has expired")
        except jwt.InvalidTokenError as e:
            raise InvalidTokenError(f"Invalid token: {e}")

        if payload.get("type", "access") != "access":
            raise InvalidTokenError("Not an access token")
        if not payload.get("sub"):
            raise InvalidTokenError("Token has no subject")

        return Principal(
            user_id=str(payload["sub"]),
            tenant_id=payload.get("tenant_id"),
            role=payload.get("role"),
        )
