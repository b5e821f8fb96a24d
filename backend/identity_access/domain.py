"""
Identity domain constants and the authenticated principal.

Why:
- Centralize allowed roles to avoid drift between tools and web layer.
- The course core trusts a principal as given: a stable id and one role.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

# Keep roles minimal and explicit. Immutable to prevent accidental mutation.
ALLOWED_ROLES = frozenset({"student", "teacher", "admin"})

# Highest privilege wins when an identity carries several roles.
_ROLE_PRECEDENCE = ("admin", "teacher", "student")


@dataclass(frozen=True)
class Principal:
    id: str
    role: str

    def __post_init__(self) -> None:
        if not self.id or not isinstance(self.id, str):
            raise ValueError("invalid_principal_id")
        if self.role not in ALLOWED_ROLES:
            raise ValueError("invalid_role")

    @property
    def can_author(self) -> bool:
        return self.role in ("teacher", "admin")


def primary_role(roles: Iterable[str]) -> Optional[str]:
    """Pick the single effective role from a role list, ignoring unknown names."""
    known = {r for r in roles if r in ALLOWED_ROLES}
    for role in _ROLE_PRECEDENCE:
        if role in known:
            return role
    return None


__all__ = ["ALLOWED_ROLES", "Principal", "primary_role"]
