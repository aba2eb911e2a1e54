"""Authorization gate for admin-only lifecycle actions."""

from collections.abc import Iterable
from typing import Protocol

from src.models.errors import AuthorizationDenied

# Capabilities checked by the gated operations.
ACTIVATE_REGULATORY_VERSION = "regulatory_version.activate"
REGISTER_REGULATORY_VERSION = "regulatory_version.register"
APPROVE_CHANGE_REQUEST = "change_request.approve"
APPROVE_RECALCULATION = "recalculation.approve"
REJECT_RECALCULATION = "recalculation.reject"


class Authorizer(Protocol):
    def is_admin(self, actor: str) -> bool: ...


class StaticAdminAuthorizer:
    """Admin capability held by a fixed set of actors (ADMIN_ACTORS)."""

    def __init__(self, admin_actors: Iterable[str]) -> None:
        self._admins = frozenset(a.strip() for a in admin_actors if a.strip())

    def is_admin(self, actor: str) -> bool:
        return actor in self._admins


def require_admin(authorizer: Authorizer, actor: str, capability: str) -> None:
    """Raise AuthorizationDenied unless ``actor`` holds the admin capability."""
    if not authorizer.is_admin(actor):
        raise AuthorizationDenied(actor, capability)
