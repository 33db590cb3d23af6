"""Authentication middleware for FastAPI."""

import logging
from collections.abc import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from crmkit.auth.jwt_service import JWTService
from crmkit.auth.principal import (
    Principal,
    clear_current_principal,
    set_current_principal,
)
from crmkit.errors import AuthenticationError

logger = logging.getLogger(__name__)


class AuthMiddleware(BaseHTTPMiddleware):
    """Resolves the request principal from a Bearer token.

    The middleware:
    1. Extracts Bearer token from Authorization header
    2. Decodes and validates the JWT
    3. Sets the current principal for the request context
    4. Mirrors it on request.state.principal

    Requests without a valid token proceed unauthenticated; endpoints that
    need a principal fail with a 401 when they ask the store for one.
    Services are looked up through providers on each request so the app
    can add the middleware before its lifespan has built them. When the
    JWT provider returns None (auth disabled) the fallback principal is
    used for every request.
    """

    def __init__(
        self,
        app,
        get_jwt_service: Callable[[], JWTService | None],
        get_fallback_principal: Callable[[], Principal | None] = lambda: None,
    ):
        super().__init__(app)
        self._get_jwt_service = get_jwt_service
        self._get_fallback_principal = get_fallback_principal

    async def dispatch(self, request: Request, call_next) -> Response:
        principal = self._get_fallback_principal()
        jwt_service = self._get_jwt_service()

        auth_header = request.headers.get("Authorization")
        if jwt_service is not None and auth_header and auth_header.startswith("Bearer "):
            token = auth_header[7:]  # Remove "Bearer " prefix
            try:
                principal = jwt_service.decode_token(token)
            except AuthenticationError as e:
                logger.info("Rejected bearer token: %s", e)
                principal = None

        request.state.principal = principal
        set_current_principal(principal)
        try:
            return await call_next(request)
        finally:
            clear_current_principal()


def get_principal(request: Request) -> Principal | None:
    """Get the principal from the request state."""
    return getattr(request.state, "principal", None)
