"""
Actor context: who is performing a workflow operation.

Authentication itself is external: a bearer JWT is decoded by
``middleware/jwt_auth.py`` into ``g.jwt_user_id`` / ``g.jwt_roles``. Services
never read Flask globals; blueprints build an ``ActorContext`` with
``current_actor()`` and pass it down explicitly.

Roles:
    client: owns projects (``Project.client_id == user_id``); restricted toggles
    staff: studio team; may act on any project and toggle any requirement kind
    admin: same rights as staff
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from flask import g

from studio_portal.core.exceptions import AccessDenied, AuthenticationRequired


class Role(str, Enum):
    CLIENT = "client"
    STAFF = "staff"
    ADMIN = "admin"


# Highest-privilege role wins when a token carries several.
_ROLE_PRECEDENCE = (Role.ADMIN, Role.STAFF, Role.CLIENT)


@dataclass(frozen=True)
class ActorContext:
    user_id: str
    role: Role

    @property
    def is_staff(self) -> bool:
        return self.role in (Role.STAFF, Role.ADMIN)

    def can_access(self, project) -> bool:
        return self.is_staff or str(project.client_id) == self.user_id

    def require_access(self, project) -> None:
        if not self.can_access(project):
            raise AccessDenied(
                f"User {self.user_id} may not access project {project.id}",
                details={"project_id": project.id},
            )

    def require_staff(self) -> None:
        if not self.is_staff:
            raise AccessDenied("This action is restricted to studio staff")


def resolve_role(roles) -> Role | None:
    names = {str(r).lower() for r in (roles or [])}
    for role in _ROLE_PRECEDENCE:
        if role.value in names:
            return role
    return None


def current_actor() -> ActorContext:
    """Build the actor for the current request from the decoded JWT.

    Raises:
        AuthenticationRequired: no valid bearer token, or no recognised role.
    """
    user_id = getattr(g, "jwt_user_id", None)
    role = resolve_role(getattr(g, "jwt_roles", None))
    if user_id is None or role is None:
        raise AuthenticationRequired()
    return ActorContext(user_id=str(user_id), role=role)
