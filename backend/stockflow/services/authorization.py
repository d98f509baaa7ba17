# Overview: Authenticated principal and the single authorization predicate.

"""
Every stock-engine operation calls authorize(op, principal, target) once.

Role grants come from permissions.DEFAULT_ROLE_PERMISSIONS. Operations with
location scope additionally require the target location(s):

- admin:   every location
- manager: locations in accessible_locations
- staff:   same, but the role grant only covers sales and reads

Transfer reads and cancellation accept access to EITHER end of the
transfer; cancellation is also open to the original requester.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from ..errors import Forbidden
from ..permissions import DEFAULT_ROLE_PERMISSIONS, is_location_scoped


ANY_LOCATION_OPS = frozenset({"VIEW_TRANSFERS", "CANCEL_TRANSFER"})


@dataclass(frozen=True)
class Principal:
    user_id: int
    role: str
    accessible_locations: frozenset = field(default_factory=frozenset)
    username: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def has_access_to(self, location_id: int | None) -> bool:
        if self.is_admin:
            return True
        return location_id is not None and location_id in self.accessible_locations

    def can(self, op: str) -> bool:
        return op in DEFAULT_ROLE_PERMISSIONS.get(self.role, frozenset())

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "username": self.username,
            "role": self.role,
            "locations": sorted(self.accessible_locations),
        }


def _as_location_ids(target) -> list[int]:
    if target is None:
        return []
    if isinstance(target, int):
        return [target]
    return [loc for loc in target if loc is not None]


def authorize(
    op: str,
    principal: Principal,
    target: int | Iterable[int] | None = None,
    *,
    owner_user_id: int | None = None,
) -> None:
    """
    Raise Forbidden unless principal may perform op against target.

    target is a location id or a collection of location ids. For most
    operations the principal needs every listed location; ANY_LOCATION_OPS
    need just one.
    """
    if principal is None:
        raise Forbidden("Authentication context missing")

    if not principal.can(op):
        raise Forbidden(
            f"Role '{principal.role}' is not allowed to perform {op}",
            {"operation": op},
        )

    if principal.is_admin or not is_location_scoped(op):
        return

    locations = _as_location_ids(target)
    if not locations:
        return

    if op == "CANCEL_TRANSFER" and owner_user_id is not None and owner_user_id == principal.user_id:
        return

    if op in ANY_LOCATION_OPS:
        allowed = any(principal.has_access_to(loc) for loc in locations)
    else:
        allowed = all(principal.has_access_to(loc) for loc in locations)

    if not allowed:
        raise Forbidden(
            "No access to this location",
            {"operation": op, "location_ids": sorted(set(locations))},
        )
