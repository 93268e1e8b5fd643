"""Role checks for notification dispatch."""

from collections.abc import Awaitable, Callable, Iterable

from restock_service.domain.models import Identity
from restock_service.errors import AuthorizationError

IdentityProvider = Callable[[], Awaitable[Identity | None]]


def static_identity(subject: str, role: str) -> IdentityProvider:
    """Identity provider for trusted callers such as the background scheduler."""
    identity = Identity(subject=subject, role=role)

    async def provider() -> Identity | None:
        return identity

    return provider


def anonymous() -> IdentityProvider:
    async def provider() -> Identity | None:
        return None

    return provider


def require_privileged(identity: Identity | None, roles: Iterable[str]) -> Identity:
    """Return the identity if it holds one of ``roles``, else raise."""
    if identity is None:
        raise AuthorizationError("Authentication required for notification processing")
    if identity.role not in set(roles):
        raise AuthorizationError(
            f"Admin privileges required for notification processing (role: {identity.role})"
        )
    return identity
