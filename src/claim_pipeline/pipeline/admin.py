"""Admin-only management of report reference data."""

from claim_pipeline.auth.session import SessionContext
from claim_pipeline.db.reference import AnalysisTypeRepository, ContextRepository
from claim_pipeline.models.claim import AnalysisType, InsuranceContext
from claim_pipeline.observability.logger import get_logger

logger = get_logger(__name__)


def add_insurance_context(
    session: SessionContext,
    context_type: str,
    title: str,
    content: str,
    db_path: str | None = None,
) -> InsuranceContext:
    """Add a reference text (policy conditions, exclusions, ...) for report prompts.

    Raises:
        PermissionDeniedError: If the session is not an admin.
        ValueError: If a field is blank.
    """
    session.require_admin()
    for name, value in (("context_type", context_type), ("title", title), ("content", content)):
        if not value or not value.strip():
            raise ValueError(f"{name} is required")
    context = ContextRepository(db_path).add_context(context_type.strip(), title.strip(), content)
    logger.info("Added insurance context %s (%s)", context.id, context.context_type)
    return context


def set_insurance_context_active(
    session: SessionContext, context_id: str, is_active: bool, db_path: str | None = None
) -> None:
    session.require_admin()
    ContextRepository(db_path).set_active(context_id, is_active)


def add_analysis_type(
    session: SessionContext,
    name: str,
    system_prompt: str,
    description: str = "",
    db_path: str | None = None,
) -> AnalysisType:
    """Register a system prompt selectable for claim-level reports.

    Raises:
        PermissionDeniedError: If the session is not an admin.
        ValueError: If name or system prompt is blank.
    """
    session.require_admin()
    if not name or not name.strip():
        raise ValueError("name is required")
    if not system_prompt or not system_prompt.strip():
        raise ValueError("system_prompt is required")
    analysis_type = AnalysisTypeRepository(db_path).add_analysis_type(
        name.strip(), system_prompt.strip(), description=description, created_by=session.user_id
    )
    logger.info("Added analysis type %s", analysis_type.id)
    return analysis_type
