"""Role-tagged session context resolved once per action and passed explicitly."""

import logging
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from claim_pipeline.db.constants import ROLE_ADMIN, ROLE_LIKVIDATOR
from claim_pipeline.db.reference import RoleRepository

logger = logging.getLogger(__name__)


class Role(str, Enum):
    ADMIN = ROLE_ADMIN
    LIKVIDATOR = ROLE_LIKVIDATOR


class PermissionDeniedError(Exception):
    """The session lacks the role an operation requires."""

    def __init__(self, user_id: str, required: Role):
        self.user_id = user_id
        self.required = required
        super().__init__(f"User {user_id} requires role {required.value}")


class SessionContext(BaseModel):
    """Who is acting and with which roles. Immutable once resolved."""

    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., min_length=1)
    roles: frozenset[Role] = Field(default_factory=frozenset)

    @property
    def is_admin(self) -> bool:
        return Role.ADMIN in self.roles

    def has_role(self, role: Role) -> bool:
        return role in self.roles

    def require_admin(self) -> None:
        """Raises PermissionDeniedError unless the session has the admin role."""
        if not self.is_admin:
            raise PermissionDeniedError(self.user_id, Role.ADMIN)


def resolve_session(user_id: str, db_path: str | None = None) -> SessionContext:
    """Look up the user's roles once and return the session context."""
    roles = RoleRepository(db_path).get_roles(user_id)
    known = frozenset(Role(r) for r in roles if r in Role._value2member_map_)
    return SessionContext(user_id=user_id, roles=known)


def grant_role(
    session: SessionContext, user_id: str, role: Role | str, db_path: str | None = None
) -> None:
    """Grant a role to a user. Admin only, except that the first admin may be created by anyone."""
    role = Role(role)
    repo = RoleRepository(db_path)
    if not session.is_admin:
        if role is not Role.ADMIN or repo.role_exists(ROLE_ADMIN):
            raise PermissionDeniedError(session.user_id, Role.ADMIN)
        logger.info("Bootstrapping first admin: %s", user_id)
    repo.grant_role(user_id, role.value)

