"""Role, audit action and report scope constants.

Document and claim statuses live in claim_pipeline.models.status.
"""

ROLE_ADMIN = "admin"
ROLE_LIKVIDATOR = "likvidator"

# All allowed application roles (single source of truth for validation/docs)
APP_ROLES = (
    ROLE_ADMIN,
    ROLE_LIKVIDATOR,
)

# Document audit log actions
ACTION_UPLOADED = "uploaded"
ACTION_STATUS_CHANGED = "status_changed"
ACTION_TEXT_UPDATED = "text_updated"
ACTION_REVIEWED = "reviewed"
ACTION_REPORT_CREATED = "report_created"

REPORT_SCOPE_DOCUMENT = "document"
REPORT_SCOPE_CLAIM = "claim"
