"""
Identity & Role Resolver (``fieldrep_kernel.domain.identity``).

Responsibility
--------------
The acting principal as the kernel sees it: an ``Actor`` with an id, exactly
one ``Role`` and an optional region.  The kernel never derives a role
itself; it consumes actors produced by a ``RoleResolver`` supplied by the
session/credential layer.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Protocol, runtime_checkable

from fieldrep_kernel.exceptions import ForbiddenError


class Role(str, Enum):
    """The fixed role enumeration."""

    REPRESENTATIVE = "representative"
    REGIONAL_MANAGER = "regional_manager"
    ACCOUNTANT = "accountant"
    ADMINISTRATOR = "administrator"


REVIEWER_ROLES: frozenset[Role] = frozenset({Role.ACCOUNTANT, Role.REGIONAL_MANAGER})

# Legacy user-type strings found in the user directory.
USER_TYPE_ROLES: dict[str, Role] = {
    "visiteur": Role.REPRESENTATIVE,
    "delegue": Role.REPRESENTATIVE,
    "responsable": Role.REGIONAL_MANAGER,
    "comptable": Role.ACCOUNTANT,
    "admin": Role.ADMINISTRATOR,
    "administrateur": Role.ADMINISTRATOR,
}


def role_from_user_type(
    user_type: str,
    mapping: Mapping[str, Role] | None = None,
) -> Role:
    """Map a directory user type (``visiteur``, ``comptable``...) to a Role.

    Role values themselves are accepted as well.

    Raises:
        ValueError: unknown user type.
    """
    key = user_type.strip().lower()
    table = USER_TYPE_ROLES if mapping is None else mapping
    if key in table:
        return table[key]
    try:
        return Role(key)
    except ValueError:
        raise ValueError(f"Unknown user type: {user_type!r}") from None


@dataclass(frozen=True)
class Actor:
    """An authenticated principal acting in one role for a whole session."""

    id: str
    role: Role
    region_id: str | None = None

    def __post_init__(self) -> None:
        if not self.id or not str(self.id).strip():
            raise ValueError("actor id cannot be empty")
        if not isinstance(self.role, Role):
            object.__setattr__(self, "role", Role(self.role))

    @property
    def is_reviewer(self) -> bool:
        return self.role in REVIEWER_ROLES

    def log_fields(self) -> dict[str, str]:
        return {"actor_id": self.id, "actor_role": self.role.value}


@runtime_checkable
class RoleResolver(Protocol):
    """Produces the Actor for an authenticated principal id."""

    def resolve(self, principal_id: str) -> Actor:
        ...


class StaticRoleResolver:
    """RoleResolver backed by a dict.

    Can be replaced with a directory- or token-backed implementation.
    """

    def __init__(self, actors: Mapping[str, Actor] | None = None) -> None:
        self._actors: dict[str, Actor] = dict(actors or {})

    def register(self, actor: Actor) -> None:
        self._actors[actor.id] = actor

    def resolve(self, principal_id: str) -> Actor:
        actor = self._actors.get(principal_id)
        if actor is None:
            raise ForbiddenError(
                "authenticate",
                "unknown or unauthenticated principal",
                actor_id=principal_id,
            )
        return actor
