"""Session context and capability checks."""

from claim_pipeline.auth.session import (
    PermissionDeniedError,
    Role,
    SessionContext,
    grant_role,
    resolve_session,
)

__all__ = [
    "PermissionDeniedError",
    "Role",
    "SessionContext",
    "grant_role",
    "resolve_session",
]
