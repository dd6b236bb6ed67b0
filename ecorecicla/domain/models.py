"""
ecorecicla.domain.models — Request-scoped identity.

Import pattern::

    from ecorecicla.domain.models import UserContext
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from ecorecicla.domain.enums import AppRole


@dataclass
class UserContext:
    """
    Lightweight context object built from the authenticated request.
    Passed down to route helpers so they can authorise without touching the
    request object directly.
    """
    user_id: Optional[str] = None           # auth-provider user id (UUID str)
    email:   Optional[str] = None
    name:    Optional[str] = None
    roles:   List[AppRole] = field(default_factory=list)

    @classmethod
    def anonymous(cls) -> "UserContext":
        """Return an empty context for unauthenticated requests."""
        return cls()

    @classmethod
    def from_token(cls, payload: dict, roles: Optional[List[str]] = None) -> "UserContext":
        parsed: List[AppRole] = []
        for r in roles or []:
            try:
                parsed.append(AppRole(r))
            except ValueError:
                continue
        return cls(
            user_id=payload.get("sub"),
            email=payload.get("email"),
            name=payload.get("name"),
            roles=parsed,
        )

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    def has_role(self, role: AppRole) -> bool:
        return role in self.roles

    @property
    def is_admin(self) -> bool:
        return self.has_role(AppRole.ADMIN)
