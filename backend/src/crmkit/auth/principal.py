"""Current-principal resolution using ContextVars.

The API middleware sets the principal for the duration of a request so
the record store can answer ``current_principal()`` without the caller
threading it through every call.
"""

from contextvars import ContextVar
from dataclasses import dataclass

from crmkit.errors import AuthenticationError


@dataclass(frozen=True)
class Principal:
    """The authenticated actor behind a request.

    Attributes:
        user_id: Stable user identifier, stamped as ``author_id`` on create
        tenant_id: Tenant the token was issued for, if any
        role: Role claim from the token
    """

    user_id: str
    tenant_id: str | None = None
    role: str | None = None


_current_principal: ContextVar[Principal | None] = ContextVar(
    "current_principal", default=None
)


def set_current_principal(principal: Principal | None) -> None:
    _current_principal.set(principal)


def clear_current_principal() -> None:
    _current_principal.set(None)


def peek_current_principal() -> Principal | None:
    """Return the current principal or None when unauthenticated."""
    return _current_principal.get()


def get_current_principal() -> Principal:
    """Return the current principal.

    Raises:
        AuthenticationError: If no principal is set for this context
    """
    principal = _current_principal.get()
    if principal is None:
        raise AuthenticationError("No authenticated principal for this request")
    return principal
