"""Principal resolution for crmkit."""

from crmkit.auth.jwt_service import InvalidTokenError, JWTService, TokenExpiredError
from crmkit.auth.middleware import AuthMiddleware, get_principal
from crmkit.auth.principal import (
    Principal,
    clear_current_principal,
    get_current_principal,
    peek_current_principal,
    set_current_principal,
)

__all__ = [
    "AuthMiddleware",
    "InvalidTokenError",
    "JWTService",
    "Principal",
    "TokenExpiredError",
    "clear_current_principal",
    "get_current_principal",
    "get_principal",
    "peek_current_principal",
    "set_current_principal",
]
